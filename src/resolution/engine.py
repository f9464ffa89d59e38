"""Resolution engine: ordered fallback across repositories with write-through caching.

Repositories are tried in configured order. A repository that does not have
the artifact is skipped; any other failure aborts the resolution so that an
outage is never reported as "not found". Artifacts served by a remote
repository are copied into the first writable repository before being handed
back. Concurrent requests for the same coordinate share one resolution.
"""
from __future__ import annotations

import io
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence

from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from resolution.coordinate import Coordinate
from resolution.errors import (
    AggregateNotFoundError,
    ArtifactNotFoundError,
    ResolutionError,
    ResolutionInterrupted,
)
from resolution.monitor import ResolutionMonitor
from resolution.repositories.base import Repository, ResolutionResult
from resolution.repositories.local import path_from_location
from resolution.storage import WriteCancelled, iter_chunks

_WAIT_POLL_SECONDS = 0.05


class ResolvedArtifact:
    """Outcome of a successful resolution.

    ``path`` is set when the bytes are on local disk (a local hit or the
    write-through copy); otherwise the artifact holds the downloaded bytes.
    Every call to ``open()`` returns an independent stream, except that the
    stream already opened during resolution is handed out first.
    """

    def __init__(
        self,
        coordinate: Coordinate,
        repository: Repository,
        location: str,
        path: Optional[Path] = None,
        data: Optional[bytes] = None,
        stream: Optional[BinaryIO] = None,
    ):
        self.coordinate = coordinate
        self.repository = repository
        self.location = location
        self.path = path
        self._data = data
        self._stream = stream
        self._stream_lock = threading.Lock()

    @property
    def cached(self) -> bool:
        """True when a remote artifact was copied into a writable repository."""
        return self.repository.is_remote and self.path is not None

    def open(self) -> BinaryIO:
        with self._stream_lock:
            stream, self._stream = self._stream, None
        if stream is not None:
            return stream
        if self.path is not None:
            return open(self.path, "rb")  # pylint: disable=consider-using-with
        return io.BytesIO(self._data or b"")

    def shared(self) -> "ResolvedArtifact":
        """Copy for another caller; never carries the primed stream."""
        return ResolvedArtifact(
            self.coordinate, self.repository, self.location, path=self.path, data=self._data
        )

    def close(self) -> None:
        """Close the primed stream if nobody took it."""
        with self._stream_lock:
            stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    def __repr__(self) -> str:
        return (
            f"ResolvedArtifact({self.coordinate}, repository={self.repository.id!r}, "
            f"location={self.location!r})"
        )


class _InFlight:
    """One in-progress resolution that concurrent callers wait on."""

    __slots__ = ("done", "artifact", "error")

    def __init__(self):
        self.done = threading.Event()
        self.artifact: Optional[ResolvedArtifact] = None
        self.error: Optional[BaseException] = None


class _GuardedMonitor(ResolutionMonitor):
    """Forwards to a caller's monitor, logging and discarding its exceptions."""

    def __init__(self, delegate: Optional[ResolutionMonitor], log: logging.Logger):
        self._delegate = delegate
        self._log = log

    def _call(self, hook: str, *args) -> None:
        if self._delegate is None:
            return
        try:
            getattr(self._delegate, hook)(*args)
        except Exception:  # pylint: disable=broad-exception-caught
            self._log.warning(
                "Resolution monitor raised in %s()",
                hook,
                exc_info=True,
                extra=extra_context(event="monitor_error", component="engine", action=hook),
            )

    def found(self, coord, location, repository, content_length=None):
        self._call("found", coord, location, repository, content_length)

    def downloading(self, coord, bytes_so_far, content_length=None):
        self._call("downloading", coord, bytes_so_far, content_length)

    def downloaded(self, coord, bytes_written):
        self._call("downloaded", coord, bytes_written)

    def failed(self, coord, repository, error):
        self._call("failed", coord, repository, error)


class ResolutionEngine:
    """Resolves coordinates against an ordered, immutable list of repositories."""

    def __init__(
        self,
        repositories: Sequence[Repository],
        logger: Optional[logging.Logger] = None,
        monitor: Optional[ResolutionMonitor] = None,
    ):
        """Initialize the engine.

        Args:
            repositories: Repositories in priority order; ids must be unique.
            logger: Logging sink; defaults to this module's logger.
            monitor: Default monitor when ``resolve`` is called without one.

        Raises:
            ValueError: Empty repository list or duplicate repository ids.
        """
        if not repositories:
            raise ValueError("At least one repository is required")
        seen = set()
        for repo in repositories:
            if repo.id in seen:
                raise ValueError(f"Duplicate repository id '{repo.id}'")
            seen.add(repo.id)

        self._repositories = tuple(repositories)
        self._log = logger or logging.getLogger(__name__)
        self._monitor = monitor
        self._inflight: Dict[Coordinate, _InFlight] = {}
        self._inflight_lock = threading.Lock()

    @property
    def repositories(self) -> Sequence[Repository]:
        return self._repositories

    def cache_repository(self) -> Optional[Repository]:
        """First writable repository, the target of write-through caching."""
        for repo in self._repositories:
            if repo.is_writable:
                return repo
        return None

    def candidates(self, coord: Coordinate) -> List[Repository]:
        """Repositories supporting ``coord``, in configured order."""
        return [repo for repo in self._repositories if repo.supported(coord)]

    def resolve(
        self,
        coord: Coordinate,
        monitor: Optional[ResolutionMonitor] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BinaryIO:
        """Resolve ``coord`` and return an open binary stream of its bytes.

        The caller must close the stream. See ``resolve_artifact`` for errors.
        """
        return self.resolve_artifact(coord, monitor=monitor, cancel=cancel).open()

    def resolve_artifact(
        self,
        coord: Coordinate,
        monitor: Optional[ResolutionMonitor] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ResolvedArtifact:
        """Resolve ``coord`` to a ResolvedArtifact.

        Args:
            coord: Coordinate to resolve.
            monitor: Observer for this request; falls back to the engine default.
            cancel: When set, the resolution stops at the next chunk boundary.

        Raises:
            AggregateNotFoundError: No eligible repository has the artifact.
            TransportError: A remote repository failed; later ones are not tried.
            RepositoryIOError: Local filesystem failure.
            ResolutionInterrupted: ``cancel`` was set.
        """
        candidates = self.candidates(coord)
        if not candidates:
            self._log.warning(
                "No repository supports %s",
                coord,
                extra=extra_context(
                    event="resolve", component="engine", outcome="unsupported",
                    coordinate=str(coord),
                ),
            )
            raise AggregateNotFoundError(coord, [])

        guarded = _GuardedMonitor(monitor or self._monitor, self._log)
        while True:
            with self._inflight_lock:
                slot = self._inflight.get(coord)
                leader = slot is None
                if leader:
                    slot = _InFlight()
                    self._inflight[coord] = slot

            if leader:
                return self._lead(coord, candidates, guarded, cancel, slot)

            self._wait(coord, slot, cancel)
            if slot.error is None and slot.artifact is not None:
                return slot.artifact.shared()
            if isinstance(slot.error, ResolutionInterrupted) or not isinstance(slot.error, Exception):
                # The leader was cancelled; this caller still wants the artifact.
                continue
            raise slot.error

    def _wait(self, coord: Coordinate, slot: _InFlight, cancel: Optional[threading.Event]) -> None:
        if is_debug_enabled(self._log):
            self._log.debug(
                "Waiting for in-flight resolution",
                extra=extra_context(event="resolve", component="engine", action="wait",
                                    coordinate=str(coord)),
            )
        while not slot.done.wait(_WAIT_POLL_SECONDS):
            if cancel is not None and cancel.is_set():
                raise ResolutionInterrupted(f"Resolution of {coord} cancelled", coord)

    def _lead(
        self,
        coord: Coordinate,
        candidates: Sequence[Repository],
        monitor: ResolutionMonitor,
        cancel: Optional[threading.Event],
        slot: _InFlight,
    ) -> ResolvedArtifact:
        try:
            with Timer() as t:
                artifact = self._resolve_in_order(coord, candidates, monitor, cancel)
            slot.artifact = artifact
            self._log.info(
                "Resolved %s from %s",
                coord,
                artifact.repository.name,
                extra=extra_context(
                    event="resolve", component="engine", outcome="resolved",
                    coordinate=str(coord), repository=artifact.repository.id,
                    target=safe_url(artifact.location), duration_ms=t.duration_ms(),
                ),
            )
            return artifact
        except BaseException as exc:
            slot.error = exc
            raise
        finally:
            with self._inflight_lock:
                self._inflight.pop(coord, None)
            slot.done.set()

    def _resolve_in_order(
        self,
        coord: Coordinate,
        candidates: Sequence[Repository],
        monitor: ResolutionMonitor,
        cancel: Optional[threading.Event],
    ) -> ResolvedArtifact:
        attempted: List[str] = []
        for repo in candidates:
            self._check_cancel(coord, cancel)
            attempted.append(repo.id)

            result = repo.resolve(coord)
            if result is None:
                if is_debug_enabled(self._log):
                    self._log.debug(
                        "Repository does not serve coordinate",
                        extra=extra_context(event="resolve", component="engine",
                                            outcome="skipped", coordinate=str(coord),
                                            repository=repo.id),
                    )
                continue

            try:
                stream = repo.retrieve(coord, result, monitor)
            except ArtifactNotFoundError as exc:
                if is_debug_enabled(self._log):
                    self._log.debug(
                        "Not found, trying next repository",
                        extra=extra_context(event="resolve", component="engine",
                                            outcome="not_found", coordinate=str(coord),
                                            repository=repo.id,
                                            target=safe_url(result.location)),
                    )
                monitor.failed(coord, repo, exc)
                continue
            except ResolutionError as exc:
                self._fail(coord, repo, exc, monitor)
                raise

            if repo.is_remote:
                return self._cache_remote(coord, repo, result, stream, monitor, cancel)

            monitor.found(coord, result.location, repo, None)
            return ResolvedArtifact(
                coord, repo, result.location,
                path=path_from_location(result.location), stream=stream,
            )

        self._log.warning(
            "%s not found in any repository",
            coord,
            extra=extra_context(event="resolve", component="engine", outcome="not_found",
                                coordinate=str(coord)),
        )
        raise AggregateNotFoundError(coord, attempted)

    def _cache_remote(
        self,
        coord: Coordinate,
        repo: Repository,
        result: ResolutionResult,
        stream: BinaryIO,
        monitor: ResolutionMonitor,
        cancel: Optional[threading.Event],
    ) -> ResolvedArtifact:
        total = getattr(stream, "content_length", None)
        written = [0]

        def progress(count: int) -> None:
            written[0] = count
            monitor.downloading(coord, count, total)

        target = self.cache_repository()
        path: Optional[Path] = None
        data: Optional[bytes] = None
        try:
            if target is not None:
                path = target.store(coord, stream, cancel=cancel, on_progress=progress)
            else:
                buffer = io.BytesIO()
                for chunk in iter_chunks(stream):
                    self._check_cancel(coord, cancel)
                    buffer.write(chunk)
                    progress(buffer.tell())
                self._check_cancel(coord, cancel)
                data = buffer.getvalue()
        except (WriteCancelled, KeyboardInterrupt) as exc:
            raise ResolutionInterrupted(f"Resolution of {coord} cancelled", coord,
                                        repo.id) from exc
        except ResolutionError as exc:
            if not isinstance(exc, ResolutionInterrupted):
                self._fail(coord, repo, exc, monitor)
            raise
        finally:
            stream.close()

        monitor.downloaded(coord, written[0])
        # Snapshot streams report the timestamped URL they were served from.
        location = getattr(stream, "location", None) or result.location
        return ResolvedArtifact(coord, repo, location, path=path, data=data)

    def _fail(self, coord: Coordinate, repo: Repository, exc: ResolutionError,
              monitor: ResolutionMonitor) -> None:
        self._log.error(
            "Resolution of %s failed at %s: %s",
            coord,
            repo.name,
            exc,
            extra=extra_context(
                event="resolve", component="engine", outcome="failed",
                coordinate=str(coord), repository=repo.id,
                status_code=getattr(exc, "status_code", None),
            ),
        )
        monitor.failed(coord, repo, exc)

    @staticmethod
    def _check_cancel(coord: Coordinate, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise ResolutionInterrupted(f"Resolution of {coord} cancelled", coord)
