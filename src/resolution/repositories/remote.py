"""Remote repository speaking the standard hierarchical layout over HTTP(S)."""

from __future__ import annotations

import io
import logging
from typing import Optional

import requests

from constants import Constants
from common import http_client
from common.http_client import HttpClientFactory
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from resolution import layout
from resolution.coordinate import Coordinate
from resolution.errors import ArtifactNotFoundError, TransportError
from resolution.monitor import ResolutionMonitor
from resolution.repositories.base import (
    Repository,
    RepositoryBuilder,
    RepositoryRole,
    ResolutionResult,
)
from resolution.snapshot import SnapshotMetadataError, parse_snapshot_metadata

logger = logging.getLogger(__name__)


class ResponseStream(io.RawIOBase):
    """Readable binary stream over a streamed ``requests`` response.

    Transport failures while reading surface as TransportError. Closing the
    stream closes the response and its session.
    """

    def __init__(self, response: requests.Response, session: requests.Session,
                 coord: Coordinate, repository_id: str,
                 chunk_size: int = Constants.CHUNK_SIZE):
        super().__init__()
        self._response = response
        self._session = session
        self._coord = coord
        self._repository_id = repository_id
        self._chunks = response.iter_content(chunk_size=chunk_size)
        self._pending = b""
        self.content_length = http_client.content_length(response)
        self.location = response.url

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if not self._pending:
            try:
                self._pending = next(self._chunks, b"")
            except requests.RequestException as exc:
                raise TransportError(
                    f"Transfer of {self._coord} from '{self._repository_id}' interrupted: {exc}",
                    self._coord,
                    self._repository_id,
                    location=safe_url(self.location),
                ) from exc
            if not self._pending:
                return 0
        count = min(len(buffer), len(self._pending))
        buffer[:count] = self._pending[:count]
        self._pending = self._pending[count:]
        return count

    def close(self) -> None:
        if not self.closed:
            try:
                self._response.close()
            finally:
                self._session.close()
        super().close()


class RemoteRepository(Repository):
    """HTTP repository rooted at a base URL (Maven Central by default)."""

    role = RepositoryRole.READABLE | RepositoryRole.REMOTE

    def __init__(
        self,
        root: str = Constants.REMOTE_REPOSITORY_URL,
        name: str = Constants.REMOTE_REPOSITORY_NAME,
        repository_id: str = Constants.REMOTE_REPOSITORY_ID,
        releases: bool = True,
        snapshots: bool = True,
        http_factory: Optional[HttpClientFactory] = None,
    ):
        if not root.lower().startswith(("http://", "https://")):
            raise ValueError(f"Remote repository root must be an http(s) URL: {root}")
        self._root = root.rstrip("/")
        self._name = name
        self._id = repository_id
        self._releases = releases
        self._snapshots = snapshots
        self._http_factory = http_factory

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def root(self) -> str:
        return self._root

    @property
    def releases(self) -> bool:
        return self._releases

    @property
    def snapshots(self) -> bool:
        return self._snapshots

    @property
    def http_factory(self) -> HttpClientFactory:
        return self._http_factory or http_client.default_client_factory()

    def serves(self, coord: Coordinate) -> bool:
        """Whether this repository carries coord's kind of version."""
        return self._snapshots if coord.is_snapshot else self._releases

    def resolve(self, coord: Coordinate) -> Optional[ResolutionResult]:
        if not self.serves(coord):
            return None
        return ResolutionResult(location=layout.remote_url(self._root, coord))

    def retrieve(
        self,
        coord: Coordinate,
        result: ResolutionResult,
        monitor: Optional[ResolutionMonitor] = None,
    ) -> ResponseStream:
        if not self.serves(coord):
            raise ArtifactNotFoundError(coord, self._id, result.location)

        factory = self.http_factory
        session = factory.get()
        try:
            url = result.location
            if coord.is_snapshot and not coord.is_resolved:
                url = self._snapshot_url(session, coord)

            response = self._get(session, coord, url)
            if response.status_code == 200:
                stream = ResponseStream(response, session, coord, self._id)
                if monitor is not None:
                    monitor.found(coord, url, self, stream.content_length)
                return stream
            response.close()
            if response.status_code == 404:
                raise ArtifactNotFoundError(coord, self._id, safe_url(url))
            raise TransportError(
                f"Unexpected status {response.status_code} for {safe_url(url)}",
                coord,
                self._id,
                status_code=response.status_code,
                location=safe_url(url),
            )
        except BaseException:
            session.close()
            raise

    def _get(self, session: requests.Session, coord: Coordinate, url: str) -> requests.Response:
        try:
            return http_client.open_stream(
                session, url, timeout=self.http_factory.timeout, context=self._id
            )
        except requests.RequestException as exc:
            logger.warning(
                "Connection to %s failed: %s",
                self._name,
                exc,
                extra=extra_context(
                    event="http_exception",
                    component="remote_repository",
                    outcome="request_exception",
                    repository=self._id,
                    target=safe_url(url),
                ),
            )
            raise TransportError(
                f"Cannot reach '{self._id}' for {coord}: {exc}",
                coord,
                self._id,
                location=safe_url(url),
            ) from exc

    def _snapshot_url(self, session: requests.Session, coord: Coordinate) -> str:
        """Swap the bare -SNAPSHOT file name for the latest timestamped build."""
        directory = layout.remote_directory_url(self._root, coord)
        meta_url = directory + Constants.SNAPSHOT_METADATA_FILE
        response = self._get(session, coord, meta_url)
        try:
            if response.status_code == 404:
                raise ArtifactNotFoundError(coord, self._id, safe_url(meta_url))
            if response.status_code != 200:
                raise TransportError(
                    f"Unexpected status {response.status_code} for {safe_url(meta_url)}",
                    coord,
                    self._id,
                    status_code=response.status_code,
                    location=safe_url(meta_url),
                )
            try:
                content = response.content
            except requests.RequestException as exc:
                raise TransportError(
                    f"Transfer of snapshot metadata for {coord} interrupted: {exc}",
                    coord,
                    self._id,
                    location=safe_url(meta_url),
                ) from exc
        finally:
            response.close()

        try:
            build = parse_snapshot_metadata(content).get(coord.extension, coord.classifier)
        except SnapshotMetadataError as exc:
            raise TransportError(
                f"Malformed snapshot metadata at {safe_url(meta_url)}: {exc}",
                coord,
                self._id,
                location=safe_url(meta_url),
            ) from exc

        if is_debug_enabled(logger):
            logger.debug(
                "Snapshot expanded",
                extra=extra_context(
                    event="snapshot_resolved",
                    component="remote_repository",
                    coordinate=str(coord),
                    repository=self._id,
                    target=build.value,
                ),
            )
        return directory + layout.file_name(coord, version=build.value)


class RemoteRepositoryBuilder(RepositoryBuilder):
    """Builds RemoteRepository instances.

    When neither releases nor snapshots is set both are served; when only one
    is set the other takes the opposite value.
    """

    def __init__(self):
        super().__init__(Constants.REMOTE_REPOSITORY_NAME, Constants.REMOTE_REPOSITORY_URL)
        self._id = Constants.REMOTE_REPOSITORY_ID
        self._releases: Optional[bool] = None
        self._snapshots: Optional[bool] = None
        self._http_factory: Optional[HttpClientFactory] = None

    @property
    def id(self) -> str:
        return self._id

    def with_id(self, repository_id: str) -> "RemoteRepositoryBuilder":
        self._id = repository_id
        return self

    def with_releases(self, releases: bool) -> "RemoteRepositoryBuilder":
        self._releases = releases
        return self

    def with_snapshots(self, snapshots: bool) -> "RemoteRepositoryBuilder":
        self._snapshots = snapshots
        return self

    def with_http_factory(self, factory: HttpClientFactory) -> "RemoteRepositoryBuilder":
        self._http_factory = factory
        return self

    def build(self) -> RemoteRepository:
        releases, snapshots = self._releases, self._snapshots
        if releases is None and snapshots is None:
            releases = snapshots = True
        elif releases is None:
            releases = not snapshots
        elif snapshots is None:
            snapshots = not releases
        return RemoteRepository(
            self._root,
            name=self._name,
            repository_id=self._id,
            releases=releases,
            snapshots=snapshots,
            http_factory=self._http_factory,
        )
