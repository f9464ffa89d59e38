"""Tests for the gavfetch command line."""

import sys
from unittest.mock import patch

import pytest
import responses

import gavfetch
from args import parse_args
from constants import ExitCodes
from resolution.coordinate import Coordinate
from resolution.errors import (
    AggregateNotFoundError,
    RepositoryIOError,
    ResolutionInterrupted,
    TransportError,
)

COORD = Coordinate.parse("org.example:widget:1.2.0")
PAYLOAD = b"widget jar"


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Config file with a local, an application and a remote repository."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("GAVFETCH_CONFIG", raising=False)
    config = tmp_path / "gavfetch.yml"
    config.write_text(f"""
repositories:
  - kind: application
    root: {tmp_path / 'app'}
  - kind: local
    root: {tmp_path / 'm2'}
  - kind: remote
    root: https://repo.example.com/maven2
""", encoding="utf-8")
    return tmp_path, str(config)


def _install(root, data=PAYLOAD):
    path = root / "org" / "example" / "widget" / "1.2.0" / "widget-1.2.0.jar"
    path.parent.mkdir(parents=True)
    path.write_bytes(data)
    return path


class TestParseArgs:
    """Test argument parsing."""

    def test_defaults(self):
        """Only coordinates are required."""
        args = parse_args(["org.example:widget:1.0"])

        assert args.COORDINATES == ["org.example:widget:1.0"]
        assert args.CONFIG is None
        assert args.OUTPUT is None
        assert args.REPOSITORY is None
        assert args.LOG_LEVEL is None
        assert not args.QUIET

    def test_all_options(self):
        """Every option maps to its destination."""
        args = parse_args(["-c", "c.yml", "-o", "out", "--repository", "central",
                           "--loglevel", "debug", "--logfile", "g.log", "-q", "a:b:1", "a:c:2"])

        assert args.CONFIG == "c.yml"
        assert args.OUTPUT == "out"
        assert args.REPOSITORY == "central"
        assert args.LOG_LEVEL == "DEBUG"
        assert args.LOG_FILE == "g.log"
        assert args.QUIET
        assert args.COORDINATES == ["a:b:1", "a:c:2"]

    def test_requires_coordinate(self):
        """At least one coordinate must be given."""
        with pytest.raises(SystemExit):
            parse_args([])


class TestExitCodes:
    """Test mapping of failures to exit codes."""

    @pytest.mark.parametrize("exc, code", [
        (AggregateNotFoundError(COORD, ["central"]), ExitCodes.NOT_FOUND),
        (TransportError("boom"), ExitCodes.CONNECTION_ERROR),
        (RepositoryIOError("disk full"), ExitCodes.FILE_ERROR),
        (ResolutionInterrupted("stop"), ExitCodes.INTERRUPTED),
        (KeyboardInterrupt(), ExitCodes.INTERRUPTED),
    ])
    def test_mapping(self, exc, code):
        """Each failure class has its exit code."""
        assert gavfetch.exit_code_for(exc) is code


class TestRun:
    """Test resolving coordinates from the command line."""

    def test_prints_local_path(self, workspace, capsys):
        """A local hit prints the file path."""
        tmp_path, config = workspace
        path = _install(tmp_path / "m2")

        code = gavfetch.run(parse_args(["-c", config, str(COORD)]))

        assert code is ExitCodes.SUCCESS
        assert capsys.readouterr().out.strip() == str(path)

    def test_copies_to_output_dir(self, workspace, capsys):
        """With -o the artifact is copied into the directory."""
        tmp_path, config = workspace
        _install(tmp_path / "m2")
        out = tmp_path / "out"

        code = gavfetch.run(parse_args(["-c", config, "-o", str(out), str(COORD)]))

        assert code is ExitCodes.SUCCESS
        assert (out / "widget-1.2.0.jar").read_bytes() == PAYLOAD
        assert capsys.readouterr().out.strip() == str(out / "widget-1.2.0.jar")

    @responses.activate
    def test_downloads_and_caches(self, workspace, capsys):
        """A remote hit is cached in the application repository and its path printed."""
        tmp_path, config = workspace
        responses.add(responses.GET,
                      "https://repo.example.com/maven2/org/example/widget/1.2.0/widget-1.2.0.jar",
                      body=PAYLOAD, status=200)

        code = gavfetch.run(parse_args(["-c", config, str(COORD)]))

        cached = tmp_path / "app" / "org" / "example" / "widget" / "1.2.0" / "widget-1.2.0.jar"
        assert code is ExitCodes.SUCCESS
        assert cached.read_bytes() == PAYLOAD
        assert capsys.readouterr().out.strip() == str(cached)

    @responses.activate
    def test_not_found(self, workspace):
        """Missing everywhere exits with NOT_FOUND."""
        _, config = workspace
        responses.add(responses.GET,
                      "https://repo.example.com/maven2/org/example/widget/1.2.0/widget-1.2.0.jar",
                      status=404)

        assert gavfetch.run(parse_args(["-c", config, str(COORD)])) is ExitCodes.NOT_FOUND

    @responses.activate
    def test_server_error(self, workspace):
        """A remote failure exits with CONNECTION_ERROR."""
        _, config = workspace
        responses.add(responses.GET,
                      "https://repo.example.com/maven2/org/example/widget/1.2.0/widget-1.2.0.jar",
                      status=502)

        assert gavfetch.run(parse_args(["-c", config, str(COORD)])) is ExitCodes.CONNECTION_ERROR

    def test_invalid_coordinate(self, workspace):
        """A malformed coordinate exits with FILE_ERROR."""
        _, config = workspace

        assert gavfetch.run(parse_args(["-c", config, "widget"])) is ExitCodes.FILE_ERROR

    def test_invalid_config(self, tmp_path):
        """A broken configuration exits with FILE_ERROR."""
        config = tmp_path / "bad.yml"
        config.write_text("repositories:\n  - kind: ftp\n")

        assert gavfetch.run(parse_args(["-c", str(config), str(COORD)])) is ExitCodes.FILE_ERROR

    def test_repository_pin(self, workspace, capsys):
        """--repository restricts resolution to one repository."""
        tmp_path, config = workspace
        _install(tmp_path / "m2")

        code = gavfetch.run(parse_args(["-c", config, "--repository", "repository", str(COORD)]))

        assert code is ExitCodes.NOT_FOUND

    def test_parse_coordinates_keeps_explicit_pin(self):
        """An explicit @pin wins over --repository."""
        coords = gavfetch.parse_coordinates(["@m2:g:a:1", "g:b:1"], pin="central")

        assert coords[0].repository == "m2"
        assert coords[1].repository == "central"


class TestMain:
    """Test the process entry point."""

    def test_exit_code(self, workspace, restore_root_logger):
        """main() exits with the run() result."""
        tmp_path, config = workspace
        _install(tmp_path / "m2")

        with patch.object(sys, "argv", ["gavfetch", "-q", "-c", config, str(COORD)]):
            with pytest.raises(SystemExit) as excinfo:
                gavfetch.main()

        assert excinfo.value.code == ExitCodes.SUCCESS.value

    def test_keyboard_interrupt(self, workspace, restore_root_logger):
        """Ctrl-C exits with INTERRUPTED."""
        _, config = workspace

        with patch.object(sys, "argv", ["gavfetch", "-q", "-c", config, str(COORD)]), \
                patch("gavfetch.run", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as excinfo:
                gavfetch.main()

        assert excinfo.value.code == ExitCodes.INTERRUPTED.value
