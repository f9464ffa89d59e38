"""Artifact coordinates (group, artifact, version, classifier, repository pin)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

from constants import Constants
from resolution.errors import InvalidCoordinateError

COORDINATE_FORMAT = "[@repository:]groupId:artifactId:version[:classifier]"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_segment(field_name: str, value: Optional[str]) -> None:
    """Reject values that would leave the repository root once laid out as paths."""
    if value is None:
        return
    if "/" in value or "\\" in value or value in (".", ".."):
        raise InvalidCoordinateError(
            f"Coordinate {field_name} '{value}' must not contain path separators or be '.' or '..'"
        )


@dataclass(frozen=True)
class Coordinate:
    """Immutable identity of one artifact.

    ``group`` may be absent, in which case the layout uses an empty path
    segment. ``repository`` pins resolution to the repository with that id.
    """

    artifact: str
    version: str
    group: Optional[str] = None
    classifier: Optional[str] = None
    repository: Optional[str] = None
    extension: str = Constants.DEFAULT_EXTENSION

    def __post_init__(self):
        if not self.artifact or not self.artifact.strip():
            raise InvalidCoordinateError("Coordinate artifact id must not be empty")
        if not self.version or not self.version.strip():
            raise InvalidCoordinateError(
                f"Coordinate '{self.group or ''}:{self.artifact}' has no version"
            )
        if not self.extension:
            raise InvalidCoordinateError("Coordinate extension must not be empty")
        # Normalise empty optional parts so equality stays structural.
        object.__setattr__(self, "group", _blank_to_none(self.group))
        object.__setattr__(self, "classifier", _blank_to_none(self.classifier))
        object.__setattr__(self, "artifact", self.artifact.strip())
        object.__setattr__(self, "version", self.version.strip())
        object.__setattr__(self, "repository", _blank_to_none(self.repository))
        for field_name in ("group", "artifact", "version", "classifier", "extension"):
            _check_segment(field_name, getattr(self, field_name))

    @classmethod
    def parse(cls, spec: str, extension: str = Constants.DEFAULT_EXTENSION) -> "Coordinate":
        """Parse ``[@repository:]group:artifact:version[:classifier]``.

        The group may be empty, e.g. ``:artifact:1.0`` or ``@repo::artifact:1.0``.
        """
        if spec is None or not spec.strip():
            raise InvalidCoordinateError(
                f"Empty coordinate, must be in format {COORDINATE_FORMAT}"
            )
        return cls.of_parts(spec.strip().split(":"), extension=extension)

    @classmethod
    def of_parts(
        cls, parts: Sequence[str], extension: str = Constants.DEFAULT_EXTENSION
    ) -> "Coordinate":
        """Build a coordinate from already split parts."""
        items = [part.strip() for part in parts]
        repository = None
        if items and items[0].startswith("@"):
            repository = items.pop(0)[1:]
        if len(items) < 3 or len(items) > 4:
            raise InvalidCoordinateError(
                f"Truncated coordinate '{':'.join(parts)}', must be in format "
                f"{COORDINATE_FORMAT}. groupId may be empty, i.e. ':artifactId:version' "
                f"or '@repository::artifactId:version'"
            )
        group, artifact, version = items[0], items[1], items[2]
        classifier = items[3] if len(items) == 4 else None
        return cls(
            artifact=artifact,
            version=version,
            group=group,
            classifier=classifier,
            repository=repository,
            extension=extension,
        )

    @property
    def is_snapshot(self) -> bool:
        """True for ``-SNAPSHOT`` versions, bare or timestamp-resolved."""
        suffix = Constants.SNAPSHOT_SUFFIX
        return self.version.endswith(suffix) or f"{suffix}-" in self.version

    @property
    def is_resolved(self) -> bool:
        """False only for a bare snapshot version that still needs metadata."""
        return not self.version.endswith(Constants.SNAPSHOT_SUFFIX)

    def with_version(self, version: str) -> "Coordinate":
        return replace(self, version=version)

    def without_repository(self) -> "Coordinate":
        return replace(self, repository=None)

    def __str__(self) -> str:
        text = f"{self.group or ''}:{self.artifact}:{self.version}"
        if self.classifier:
            text = f"{text}:{self.classifier}"
        if self.repository:
            text = f"@{self.repository}:{text}"
        return text
