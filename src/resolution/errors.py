"""Failure taxonomy for artifact resolution.

Only ``ArtifactNotFoundError`` is recovered inside the engine (it advances to
the next candidate repository). Everything else reaches the caller unchanged.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from resolution.coordinate import Coordinate


class InvalidCoordinateError(ValueError):
    """A coordinate string or field set that cannot name an artifact."""


class ResolutionError(Exception):
    """Base class for failures while resolving a coordinate."""

    def __init__(
        self,
        message: str,
        coordinate: Optional["Coordinate"] = None,
        repository_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.coordinate = coordinate
        self.repository_id = repository_id


class ArtifactNotFoundError(ResolutionError):
    """The coordinate is absent from one repository."""

    def __init__(
        self,
        coordinate: Optional["Coordinate"],
        repository_id: Optional[str],
        location: str,
    ):
        super().__init__(
            f"{coordinate} not found in '{repository_id}' at {location}",
            coordinate,
            repository_id,
        )
        self.location = location


class AggregateNotFoundError(ResolutionError):
    """The coordinate is absent from every eligible repository."""

    def __init__(self, coordinate: "Coordinate", attempted: Sequence[str]):
        if attempted:
            where = ", ".join(attempted)
            message = f"{coordinate} not found in any repository (tried: {where})"
        else:
            message = f"{coordinate} is not supported by any configured repository"
        super().__init__(message, coordinate)
        self.attempted: Tuple[str, ...] = tuple(attempted)


class TransportError(ResolutionError):
    """Unexpected HTTP status or connection failure talking to a remote repository."""

    def __init__(
        self,
        message: str,
        coordinate: Optional["Coordinate"] = None,
        repository_id: Optional[str] = None,
        status_code: Optional[int] = None,
        location: Optional[str] = None,
    ):
        super().__init__(message, coordinate, repository_id)
        self.status_code = status_code
        self.location = location


class RepositoryIOError(ResolutionError):
    """Local filesystem failure reading, writing or creating directories."""

    def __init__(
        self,
        message: str,
        coordinate: Optional["Coordinate"] = None,
        repository_id: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message, coordinate, repository_id)
        self.path = path


class ResolutionInterrupted(ResolutionError):
    """The resolution was cancelled before it completed."""
