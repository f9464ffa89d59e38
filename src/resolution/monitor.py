"""Observers notified of per-attempt resolution outcomes."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Optional, TextIO

from resolution.errors import ArtifactNotFoundError

if TYPE_CHECKING:
    from resolution.coordinate import Coordinate
    from resolution.repositories.base import Repository


class ResolutionMonitor:
    """Passive observer; every hook is a no-op, so this is also the empty monitor.

    Hooks run synchronously on the resolving thread and must return promptly.
    Exceptions raised here are logged by the engine and otherwise ignored.
    """

    def found(
        self,
        coord: "Coordinate",
        location: str,
        repository: "Repository",
        content_length: Optional[int] = None,
    ) -> None:
        """Bytes for ``coord`` are available from ``repository`` at ``location``."""

    def downloading(
        self,
        coord: "Coordinate",
        bytes_so_far: int,
        content_length: Optional[int] = None,
    ) -> None:
        """Progress while copying a remote artifact."""

    def downloaded(self, coord: "Coordinate", bytes_written: int) -> None:
        """A remote artifact was fully copied."""

    def failed(self, coord: "Coordinate", repository: "Repository", error: Exception) -> None:
        """An attempt against ``repository`` did not produce the artifact."""


class ConsoleMonitor(ResolutionMonitor):
    """Prints a line per event, in the style of a build tool's download log."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def _print(self, text: str) -> None:
        stream = self._stream or sys.stdout
        stream.write(text + "\n")
        stream.flush()

    def found(self, coord, location, repository, content_length=None):
        if repository.is_remote:
            self._print(f"    [Downloading] {coord} @ {location} in {repository.name}")
        else:
            self._print(f"    [Have] {coord} @ {location} in {repository.name}")

    def downloaded(self, coord, bytes_written):
        self._print(f"    [Downloaded] {coord} ({bytes_written} bytes)")

    def failed(self, coord, repository, error):
        if isinstance(error, ArtifactNotFoundError):
            self._print(f"    [Missing] {coord} in {repository.name}")
        else:
            self._print(f"    [Failed!] {error}")
