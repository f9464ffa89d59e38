"""Writable application store; also the write-through cache for remote fetches."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from constants import Constants
from common.logging_utils import extra_context
from resolution.coordinate import Coordinate
from resolution.errors import RepositoryIOError
from resolution.monitor import ResolutionMonitor
from resolution.repositories.base import (
    Repository,
    RepositoryBuilder,
    RepositoryRole,
    ResolutionResult,
)
from resolution.repositories.local import LocalRepository
from resolution.storage import Source, atomic_write

logger = logging.getLogger(__name__)


class ApplicationRepository(Repository):
    """Wraps a LocalRepository for lookups and adds ``store``."""

    role = RepositoryRole.READABLE | RepositoryRole.WRITABLE

    def __init__(self, root, name: str = Constants.APP_REPOSITORY_NAME,
                 repository_id: str = Constants.APP_REPOSITORY_ID):
        self._local = LocalRepository(root, name=name, repository_id=repository_id)

    @property
    def id(self) -> str:
        return self._local.id

    @property
    def name(self) -> str:
        return self._local.name

    @property
    def root(self) -> Path:
        return self._local.root

    def path_for(self, coord: Coordinate) -> Path:
        return self._local.path_for(coord)

    def resolve(self, coord: Coordinate) -> Optional[ResolutionResult]:
        return self._local.resolve(coord)

    def retrieve(
        self,
        coord: Coordinate,
        result: ResolutionResult,
        monitor: Optional[ResolutionMonitor] = None,
    ) -> BinaryIO:
        return self._local.retrieve(coord, result, monitor)

    def store(
        self,
        coord: Coordinate,
        source: Source,
        *,
        cancel: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> Path:
        """Write ``source`` to the layout path of ``coord`` and return that path.

        Parent directories are created first. The write is atomic; see
        ``resolution.storage``. Filesystem errors become RepositoryIOError;
        cancellation propagates as ``storage.WriteCancelled``.
        """
        path = self.path_for(coord)
        try:
            written = atomic_write(path, source, cancel=cancel, on_progress=on_progress)
        except OSError as exc:
            raise RepositoryIOError(
                f"Cannot store {coord} at {path}: {exc}", coord, self.id, str(path)
            ) from exc
        logger.info(
            "Stored %s in %s",
            coord,
            self.name,
            extra=extra_context(
                event="store",
                component="application_repository",
                outcome="success",
                repository=self.id,
                bytes=written,
                target=str(path),
            ),
        )
        return path


class ApplicationRepositoryBuilder(RepositoryBuilder):
    """Builds ApplicationRepository instances; id is always ``repository``."""

    def __init__(self):
        super().__init__(Constants.APP_REPOSITORY_NAME, Constants.APP_REPOSITORY_ROOT)

    @property
    def id(self) -> str:
        return Constants.APP_REPOSITORY_ID

    def build(self) -> ApplicationRepository:
        return ApplicationRepository(self._root, name=self._name, repository_id=self.id)
