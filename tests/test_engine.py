"""Tests for the resolution engine: fallback, write-through caching and dedup."""

import io
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests
import responses

from common.http_client import HttpClientFactory
from resolution import layout
from resolution.coordinate import Coordinate
from resolution.engine import ResolutionEngine
from resolution.errors import (
    AggregateNotFoundError,
    ArtifactNotFoundError,
    RepositoryIOError,
    ResolutionInterrupted,
    TransportError,
)
from resolution.monitor import ResolutionMonitor
from resolution.repositories import (
    ApplicationRepository,
    LocalRepository,
    RemoteRepository,
    Repository,
    RepositoryRole,
    ResolutionResult,
)

COORD = Coordinate.parse("org.example:widget:1.2.0")
PAYLOAD = b"PK\x03\x04 widget jar bytes"

SNAPSHOT = Coordinate.parse("org.example:widget:1.0-SNAPSHOT")
SNAPSHOT_METADATA = b"""<metadata>
  <groupId>org.example</groupId>
  <artifactId>widget</artifactId>
  <version>1.0-SNAPSHOT</version>
  <versioning>
    <snapshotVersions>
      <snapshotVersion>
        <extension>jar</extension>
        <value>1.0-20240101.120000-3</value>
      </snapshotVersion>
    </snapshotVersions>
  </versioning>
</metadata>
"""


class StubRemote(Repository):
    """In-memory remote repository counting retrieve calls."""

    role = RepositoryRole.READABLE | RepositoryRole.REMOTE

    def __init__(self, repository_id="stub", artifacts=None, error=None, gate=None,
                 stream_factory=None):
        self._id = repository_id
        self.artifacts = artifacts or {}
        self.error = error
        self.gate = gate
        self.stream_factory = stream_factory
        self.calls = 0
        self._lock = threading.Lock()

    @property
    def id(self):
        return self._id

    @property
    def name(self):
        return f"Stub {self._id}"

    def resolve(self, coord):
        return ResolutionResult(layout.remote_url(f"https://{self._id}.invalid", coord))

    def retrieve(self, coord, result, monitor=None):
        with self._lock:
            self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        if coord not in self.artifacts:
            raise ArtifactNotFoundError(coord, self._id, result.location)
        if self.stream_factory is not None:
            return self.stream_factory(self.artifacts[coord])
        return io.BytesIO(self.artifacts[coord])


class RecordingMonitor(ResolutionMonitor):
    """Collects hook invocations by name."""

    def __init__(self):
        self.events = []

    def found(self, coord, location, repository, content_length=None):
        self.events.append(("found", repository.id))

    def downloading(self, coord, bytes_so_far, content_length=None):
        self.events.append(("downloading", bytes_so_far))

    def downloaded(self, coord, bytes_written):
        self.events.append(("downloaded", bytes_written))

    def failed(self, coord, repository, error):
        self.events.append(("failed", repository.id))


def _residue(root):
    return [p for p in root.rglob("*") if p.name.startswith(".part-")]


@pytest.fixture
def local(tmp_path):
    return LocalRepository(tmp_path / "m2")


@pytest.fixture
def app(tmp_path):
    return ApplicationRepository(tmp_path / "app")


class TestEngineConstruction:
    """Test repository list validation."""

    def test_rejects_empty_list(self):
        """At least one repository is required."""
        with pytest.raises(ValueError):
            ResolutionEngine([])

    def test_rejects_duplicate_ids(self, tmp_path):
        """Repository ids must be unique."""
        with pytest.raises(ValueError, match="Duplicate"):
            ResolutionEngine([LocalRepository(tmp_path / "a"), LocalRepository(tmp_path / "b")])

    def test_cache_repository_is_first_writable(self, local, app):
        """The first writable repository receives remote copies."""
        engine = ResolutionEngine([local, app, StubRemote()])

        assert engine.cache_repository() is app

    def test_candidates_respect_pin(self, local, app):
        """A pinned coordinate has only the pinned repository as candidate."""
        stub = StubRemote()
        engine = ResolutionEngine([app, local, stub])

        pinned = Coordinate.parse("@stub:org.example:widget:1.2.0")

        assert engine.candidates(pinned) == [stub]
        assert engine.candidates(COORD) == [app, local, stub]


class TestLocalResolution:
    """Test hits served from disk."""

    def test_local_hit(self, local, app):
        """An artifact on disk is returned without contacting the remote."""
        path = local.path_for(COORD)
        path.parent.mkdir(parents=True)
        path.write_bytes(PAYLOAD)
        stub = StubRemote(artifacts={COORD: b"other"})
        engine = ResolutionEngine([app, local, stub])

        with engine.resolve(COORD) as stream:
            assert stream.read() == PAYLOAD

        assert stub.calls == 0

    def test_resolved_artifact_reopens(self, local):
        """A resolved artifact can be opened more than once."""
        path = local.path_for(COORD)
        path.parent.mkdir(parents=True)
        path.write_bytes(PAYLOAD)
        engine = ResolutionEngine([local])

        artifact = engine.resolve_artifact(COORD)

        assert artifact.repository is local
        assert artifact.path == path
        assert not artifact.cached
        with artifact.open() as first, artifact.open() as second:
            assert first.read() == second.read() == PAYLOAD

    def test_monitor_sees_local_hit(self, local):
        """A local hit reports found once."""
        path = local.path_for(COORD)
        path.parent.mkdir(parents=True)
        path.write_bytes(PAYLOAD)
        monitor = RecordingMonitor()

        ResolutionEngine([local]).resolve(COORD, monitor=monitor).close()

        assert monitor.events == [("found", "m2")]


class TestFallbackAndCaching:
    """Test ordered fallback and write-through caching of remote artifacts."""

    def test_remote_copy_is_cached(self, local, app):
        """A remote hit is written to the application repository byte for byte."""
        stub = StubRemote(artifacts={COORD: PAYLOAD})
        engine = ResolutionEngine([app, local, stub])

        with engine.resolve(COORD) as stream:
            assert stream.read() == PAYLOAD

        assert app.path_for(COORD).read_bytes() == PAYLOAD
        assert _residue(app.root) == []

    def test_second_resolution_uses_cache(self, local, app):
        """After caching, the remote is not contacted again."""
        stub = StubRemote(artifacts={COORD: PAYLOAD})
        engine = ResolutionEngine([app, local, stub])

        engine.resolve(COORD).close()
        artifact = engine.resolve_artifact(COORD)
        artifact.close()

        assert stub.calls == 1
        assert artifact.repository is app

    def test_not_found_falls_through(self, app):
        """A 'not found' remote is skipped in favour of the next one."""
        first = StubRemote("first")
        second = StubRemote("second", artifacts={COORD: PAYLOAD})
        monitor = RecordingMonitor()
        engine = ResolutionEngine([app, first, second])

        artifact = engine.resolve_artifact(COORD, monitor=monitor)

        assert artifact.repository is second
        assert artifact.cached
        assert ("failed", "first") in monitor.events
        assert monitor.events[-1] == ("downloaded", len(PAYLOAD))

    def test_transport_error_aborts(self, app):
        """Any failure other than 'not found' stops the resolution."""
        broken = StubRemote("broken", error=TransportError("Unexpected status 500", status_code=500))
        later = StubRemote("later", artifacts={COORD: PAYLOAD})
        monitor = RecordingMonitor()
        engine = ResolutionEngine([app, broken, later])

        with pytest.raises(TransportError) as excinfo:
            engine.resolve(COORD, monitor=monitor)

        assert excinfo.value.status_code == 500
        assert later.calls == 0
        assert ("failed", "broken") in monitor.events
        assert not app.path_for(COORD).exists()

    def test_all_missing(self, local, app):
        """Missing everywhere raises AggregateNotFoundError naming every attempt."""
        engine = ResolutionEngine([app, local, StubRemote()])

        with pytest.raises(AggregateNotFoundError) as excinfo:
            engine.resolve(COORD)

        assert excinfo.value.attempted == ("repository", "m2", "stub")

    def test_unknown_pin(self, local, app):
        """A pin naming no configured repository fails without any lookups."""
        stub = StubRemote(artifacts={COORD: PAYLOAD})
        engine = ResolutionEngine([app, local, stub])

        with pytest.raises(AggregateNotFoundError) as excinfo:
            engine.resolve(Coordinate.parse("@nowhere:org.example:widget:1.2.0"))

        assert excinfo.value.attempted == ()
        assert stub.calls == 0

    def test_pin_skips_other_repositories(self, local, app):
        """A pinned coordinate only consults its repository."""
        path = local.path_for(COORD)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"local copy")
        stub = StubRemote(artifacts={Coordinate.parse("@stub:org.example:widget:1.2.0"): PAYLOAD})
        engine = ResolutionEngine([app, local, stub])

        with engine.resolve(Coordinate.parse("@stub:org.example:widget:1.2.0")) as stream:
            assert stream.read() == PAYLOAD

    def test_without_writable_repository(self, local):
        """Without a writable repository the remote bytes are still returned."""
        stub = StubRemote(artifacts={COORD: PAYLOAD})
        engine = ResolutionEngine([local, stub])

        artifact = engine.resolve_artifact(COORD)

        assert artifact.path is None
        assert not artifact.cached
        with artifact.open() as stream:
            assert stream.read() == PAYLOAD

    def test_cache_write_failure(self, tmp_path):
        """A cache that cannot be written fails the resolution."""
        blocked = tmp_path / "blocked"
        blocked.write_bytes(b"")
        engine = ResolutionEngine([ApplicationRepository(blocked),
                                   StubRemote(artifacts={COORD: PAYLOAD})])

        with pytest.raises(RepositoryIOError):
            engine.resolve(COORD)

    def test_monitor_errors_are_ignored(self, app, caplog):
        """A raising monitor does not affect the outcome."""
        monitor = MagicMock(spec=ResolutionMonitor)
        monitor.downloaded.side_effect = RuntimeError("monitor bug")
        engine = ResolutionEngine([app, StubRemote(artifacts={COORD: PAYLOAD})])

        with engine.resolve(COORD, monitor=monitor) as stream:
            assert stream.read() == PAYLOAD

        assert any(getattr(r, "event", None) == "monitor_error" for r in caplog.records)

    def test_engine_default_monitor(self, app):
        """The monitor given at construction is used when none is passed."""
        monitor = RecordingMonitor()
        engine = ResolutionEngine([app, StubRemote(artifacts={COORD: PAYLOAD})], monitor=monitor)

        engine.resolve(COORD).close()

        assert ("downloaded", len(PAYLOAD)) in monitor.events

    def test_injected_logger(self, app):
        """Log records go to the supplied logger."""
        log = MagicMock()
        engine = ResolutionEngine([app, StubRemote()], logger=log)

        with pytest.raises(AggregateNotFoundError):
            engine.resolve(COORD)

        log.warning.assert_called()


class TestHttpRemote:
    """End to end with a real RemoteRepository over mocked HTTP."""

    @responses.activate
    def test_remote_fallback_over_http(self, local, app):
        """404 on the first remote, 200 on the second; the copy is cached."""
        first = RemoteRepository("https://one.example/m2", repository_id="one",
                                 http_factory=HttpClientFactory())
        second = RemoteRepository("https://two.example/m2", repository_id="two",
                                  http_factory=HttpClientFactory())
        responses.add(responses.GET, first.resolve(COORD).location, status=404)
        responses.add(responses.GET, second.resolve(COORD).location, body=PAYLOAD, status=200)
        monitor = RecordingMonitor()
        engine = ResolutionEngine([app, local, first, second])

        with engine.resolve(COORD, monitor=monitor) as stream:
            assert stream.read() == PAYLOAD

        assert app.path_for(COORD).read_bytes() == PAYLOAD
        assert ("found", "two") in monitor.events
        assert monitor.events[-1] == ("downloaded", len(PAYLOAD))

    @responses.activate
    def test_server_error_is_not_masked(self, app):
        """A 503 is reported as a transport failure, not as 'not found'."""
        remote = RemoteRepository("https://one.example/m2", repository_id="one",
                                  http_factory=HttpClientFactory())
        responses.add(responses.GET, remote.resolve(COORD).location, status=503)
        engine = ResolutionEngine([app, remote])

        with pytest.raises(TransportError) as excinfo:
            engine.resolve(COORD)

        assert excinfo.value.status_code == 503

    @responses.activate
    def test_snapshot_location_is_timestamped_url(self, local):
        """A bare snapshot reports the timestamped URL it was downloaded from."""
        remote = RemoteRepository("https://one.example/m2", repository_id="one",
                                  http_factory=HttpClientFactory())
        snapshot_dir = "https://one.example/m2/org/example/widget/1.0-SNAPSHOT/"
        responses.add(responses.GET, snapshot_dir + "maven-metadata.xml", body=SNAPSHOT_METADATA,
                      status=200)
        responses.add(responses.GET, snapshot_dir + "widget-1.0-20240101.120000-3.jar",
                      body=PAYLOAD, status=200)
        engine = ResolutionEngine([local, remote])

        artifact = engine.resolve_artifact(SNAPSHOT)

        assert artifact.location == snapshot_dir + "widget-1.0-20240101.120000-3.jar"
        assert artifact.coordinate == SNAPSHOT
        with artifact.open() as stream:
            assert stream.read() == PAYLOAD

    def test_connection_dropped_mid_body(self, app):
        """A truncated body fails with TransportError and leaves nothing in the cache."""

        def iter_content(chunk_size=1):
            yield b"x" * 70000
            raise requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead")

        response = MagicMock(status_code=200, headers={"Content-Length": "100000"},
                             url="https://one.example/m2/org/example/widget/1.2.0/widget-1.2.0.jar")
        response.iter_content.side_effect = iter_content
        factory = MagicMock(spec=HttpClientFactory)
        factory.timeout = (1, 1)
        factory.get.return_value.get.return_value = response
        remote = RemoteRepository("https://one.example/m2", repository_id="one",
                                  http_factory=factory)
        monitor = RecordingMonitor()

        with pytest.raises(TransportError):
            ResolutionEngine([app, remote]).resolve(COORD, monitor=monitor)

        assert not app.path_for(COORD).exists()
        assert _residue(app.root) == []
        assert ("failed", "one") in monitor.events
        response.close.assert_called()


class TestConcurrency:
    """Test per-coordinate deduplication."""

    def test_concurrent_requests_share_one_download(self, app):
        """Parallel resolutions of one coordinate contact the remote once."""
        gate = threading.Event()
        stub = StubRemote(artifacts={COORD: PAYLOAD}, gate=gate)
        engine = ResolutionEngine([app, stub])
        results = []
        errors = []

        def worker():
            try:
                with engine.resolve(COORD) as stream:
                    results.append(stream.read())
            except Exception as exc:  # pylint: disable=broad-exception-caught
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        deadline = time.monotonic() + 5
        while stub.calls == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        time.sleep(0.1)
        gate.set()
        for thread in threads:
            thread.join(10)

        assert errors == []
        assert results == [PAYLOAD] * 5
        assert stub.calls == 1

    def test_distinct_coordinates_do_not_block(self, app):
        """Different coordinates resolve independently."""
        other = Coordinate.parse("org.example:gadget:1.0")
        stub = StubRemote(artifacts={COORD: PAYLOAD, other: b"gadget"})
        engine = ResolutionEngine([app, stub])

        with engine.resolve(COORD) as a, engine.resolve(other) as b:
            assert a.read() == PAYLOAD
            assert b.read() == b"gadget"


class TestCancellation:
    """Test cancellation through a threading.Event."""

    def test_cancelled_before_start(self, app):
        """A pre-set cancel event stops before any repository is contacted."""
        stub = StubRemote(artifacts={COORD: PAYLOAD})
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(ResolutionInterrupted):
            ResolutionEngine([app, stub]).resolve(COORD, cancel=cancel)

        assert stub.calls == 0

    def test_cancelled_mid_download_leaves_no_residue(self, app):
        """Cancelling mid-copy leaves neither the artifact nor temp files; retry succeeds."""
        cancel = threading.Event()
        payload = b"x" * (3 * 65536)

        class CancellingStream(io.BytesIO):
            def read(self, size=-1):
                data = super().read(size)
                cancel.set()
                return data

        stub = StubRemote(artifacts={COORD: payload}, stream_factory=CancellingStream)
        engine = ResolutionEngine([app, stub])

        with pytest.raises(ResolutionInterrupted):
            engine.resolve(COORD, cancel=cancel)

        assert not app.path_for(COORD).exists()
        assert _residue(app.root) == []

        stub.stream_factory = None
        cancel.clear()
        with engine.resolve(COORD, cancel=cancel) as stream:
            assert stream.read() == payload
        assert app.path_for(COORD).read_bytes() == payload

    def test_keyboard_interrupt_mid_download(self, app):
        """Ctrl-C during the copy is reported as an interruption and cleaned up."""

        class InterruptingStream(io.BytesIO):
            def read(self, size=-1):
                if self.tell():
                    raise KeyboardInterrupt
                return super().read(size)

        payload = b"y" * (2 * 65536)
        stub = StubRemote(artifacts={COORD: payload}, stream_factory=InterruptingStream)
        engine = ResolutionEngine([app, stub])

        with pytest.raises(ResolutionInterrupted):
            engine.resolve(COORD)

        assert not app.path_for(COORD).exists()
        assert _residue(app.root) == []
