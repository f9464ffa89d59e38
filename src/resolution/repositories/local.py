"""Read-only repository backed by a directory in the standard layout (e.g. ~/.m2)."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import unquote, urlsplit

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from resolution import layout
from resolution.coordinate import Coordinate
from resolution.errors import ArtifactNotFoundError, RepositoryIOError
from resolution.monitor import ResolutionMonitor
from resolution.repositories.base import (
    Repository,
    RepositoryBuilder,
    RepositoryRole,
    ResolutionResult,
)

logger = logging.getLogger(__name__)


def path_from_location(location: str) -> Path:
    """Inverse of ``Path.as_uri()`` for ``file://`` locations."""
    parts = urlsplit(location)
    if parts.scheme != "file":
        raise ValueError(f"Not a file location: {location}")
    return Path(unquote(parts.path))


class LocalRepository(Repository):
    """Resolves coordinates to files under ``root``; never writes."""

    role = RepositoryRole.READABLE

    def __init__(self, root, name: str = Constants.LOCAL_REPOSITORY_NAME,
                 repository_id: str = Constants.LOCAL_REPOSITORY_ID):
        self._root = Path(os.path.expanduser(str(root))).absolute()
        self._name = name
        self._id = repository_id

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, coord: Coordinate) -> Path:
        """Layout path of ``coord`` under this repository's root."""
        return layout.local_path(self._root, coord)

    def resolve(self, coord: Coordinate) -> Optional[ResolutionResult]:
        return ResolutionResult(location=self.path_for(coord).as_uri())

    def retrieve(
        self,
        coord: Coordinate,
        result: ResolutionResult,
        monitor: Optional[ResolutionMonitor] = None,
    ) -> BinaryIO:
        path = path_from_location(result.location)
        try:
            stream = open(path, "rb")  # pylint: disable=consider-using-with
        except (FileNotFoundError, NotADirectoryError) as exc:
            if is_debug_enabled(logger):
                logger.debug(
                    "Artifact not present locally",
                    extra=extra_context(
                        event="retrieve",
                        component="local_repository",
                        outcome="not_found",
                        repository=self._id,
                        target=str(path),
                    ),
                )
            raise ArtifactNotFoundError(coord, self._id, str(path)) from exc
        except OSError as exc:
            raise RepositoryIOError(
                f"Cannot read {path} for {coord}: {exc}", coord, self._id, str(path)
            ) from exc
        return stream


class LocalRepositoryBuilder(RepositoryBuilder):
    """Builds LocalRepository instances; id defaults to ``m2``."""

    def __init__(self):
        super().__init__(Constants.LOCAL_REPOSITORY_NAME, Constants.LOCAL_REPOSITORY_ROOT)
        self._id = Constants.LOCAL_REPOSITORY_ID

    @property
    def id(self) -> str:
        return self._id

    def with_id(self, repository_id: str) -> "LocalRepositoryBuilder":
        self._id = repository_id
        return self

    def build(self) -> LocalRepository:
        return LocalRepository(self._root, name=self._name, repository_id=self._id)
