"""Repository contract shared by local, application and remote variants."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from resolution.coordinate import Coordinate
from resolution.monitor import ResolutionMonitor


class RepositoryRole(enum.Flag):
    """Capabilities a repository advertises to the engine."""

    READABLE = enum.auto()
    WRITABLE = enum.auto()
    REMOTE = enum.auto()


@dataclass(frozen=True)
class ResolutionResult:
    """Where bytes might be obtained (a file: or http(s): URI); carries no bytes."""

    location: str


class Repository(ABC):
    """A source (and possibly sink) of artifact bytes addressed by a root."""

    role: RepositoryRole = RepositoryRole.READABLE

    @property
    @abstractmethod
    def id(self) -> str:
        """Identifier, unique within one engine's repository list."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable name."""

    @property
    def is_writable(self) -> bool:
        return bool(self.role & RepositoryRole.WRITABLE)

    @property
    def is_remote(self) -> bool:
        return bool(self.role & RepositoryRole.REMOTE)

    def supported(self, coord: Coordinate) -> bool:
        """True iff ``coord`` carries no repository pin, or pins this repository."""
        return coord.repository is None or coord.repository == self.id

    @abstractmethod
    def resolve(self, coord: Coordinate) -> Optional[ResolutionResult]:
        """Compute the candidate location of ``coord``; existence is not checked."""

    @abstractmethod
    def retrieve(
        self,
        coord: Coordinate,
        result: ResolutionResult,
        monitor: Optional[ResolutionMonitor] = None,
    ) -> BinaryIO:
        """Open a binary stream for ``result``.

        Raises:
            ArtifactNotFoundError: Nothing at the location.
            TransportError: Remote transport failure or unexpected status.
            RepositoryIOError: Local filesystem failure.
        """

    def store(self, coord: Coordinate, source, *, cancel=None, on_progress=None) -> Path:
        """Persist bytes for ``coord``; only WRITABLE repositories implement this."""
        raise NotImplementedError(f"Repository '{self.id}' is read-only")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r})"


class RepositoryBuilder(ABC):
    """Builder producing one repository variant; ``id`` identifies what it builds."""

    def __init__(self, name: str, root: str):
        self._name = name
        self._root = root

    @property
    @abstractmethod
    def id(self) -> str:
        """Identifier the built repository will carry."""

    def with_name(self, name: str) -> "RepositoryBuilder":
        self._name = name
        return self

    def with_root(self, root) -> "RepositoryBuilder":
        self._root = str(root)
        return self

    @abstractmethod
    def build(self) -> Repository:
        """Create the immutable repository."""
