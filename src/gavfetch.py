"""gavfetch - resolve artifact coordinates from the command line.

Each coordinate is resolved through the configured repositories in order.
The resolved location is printed, or with ``-o DIR`` the artifact is copied
into that directory.
"""

import logging
import os
import sys
import threading
from dataclasses import replace

from args import parse_args
from config import ConfigError, load_config
from constants import ExitCodes
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from resolution import layout
from resolution.coordinate import Coordinate
from resolution.engine import ResolutionEngine, ResolvedArtifact
from resolution.errors import (
    AggregateNotFoundError,
    InvalidCoordinateError,
    RepositoryIOError,
    ResolutionError,
    ResolutionInterrupted,
    TransportError,
)
from resolution.monitor import ConsoleMonitor, ResolutionMonitor
from resolution.storage import atomic_write

logger = logging.getLogger(__name__)


def exit_code_for(exc: BaseException) -> ExitCodes:
    """Map a resolution failure to the process exit code."""
    if isinstance(exc, (ResolutionInterrupted, KeyboardInterrupt)):
        return ExitCodes.INTERRUPTED
    if isinstance(exc, AggregateNotFoundError):
        return ExitCodes.NOT_FOUND
    if isinstance(exc, TransportError):
        return ExitCodes.CONNECTION_ERROR
    return ExitCodes.FILE_ERROR


def build_engine(config_path=None, monitor=None) -> ResolutionEngine:
    """Load configuration and assemble the engine."""
    config = load_config(config_path)
    return ResolutionEngine(config.build_repositories(), monitor=monitor)


def parse_coordinates(specs, pin=None):
    """Parse command line coordinates, applying ``pin`` where none is given."""
    coords = []
    for spec in specs:
        coord = Coordinate.parse(spec)
        if pin and coord.repository is None:
            coord = replace(coord, repository=pin)
        coords.append(coord)
    return coords


def deliver(artifact: ResolvedArtifact, output_dir=None) -> str:
    """Copy the artifact into ``output_dir`` or report where it lives.

    Returns the path or URI that was printed for the user.
    """
    if output_dir is None:
        artifact.close()
        if artifact.path is not None:
            return str(artifact.path)
        return artifact.location

    dest = os.path.join(output_dir, layout.file_name(artifact.coordinate))
    with artifact.open() as stream:
        try:
            atomic_write(dest, stream)
        except OSError as exc:
            raise RepositoryIOError(
                f"Cannot write {artifact.coordinate} to {dest}: {exc}",
                artifact.coordinate,
                path=dest,
            ) from exc
    return dest


def run(args, monitor: ResolutionMonitor = None, cancel: threading.Event = None) -> ExitCodes:
    """Resolve every coordinate in ``args``; returns the first failure's exit code."""
    try:
        coords = parse_coordinates(args.COORDINATES, args.REPOSITORY)
    except InvalidCoordinateError as exc:
        logging.error("%s", exc)
        return ExitCodes.FILE_ERROR

    try:
        engine = build_engine(args.CONFIG, monitor=monitor)
    except (ConfigError, ValueError) as exc:
        logging.error("Invalid configuration: %s", exc)
        return ExitCodes.FILE_ERROR

    result = ExitCodes.SUCCESS
    for coord in coords:
        try:
            artifact = engine.resolve_artifact(coord, cancel=cancel)
            print(deliver(artifact, args.OUTPUT))
        except ResolutionInterrupted:
            logging.warning("Interrupted while resolving %s", coord)
            return ExitCodes.INTERRUPTED
        except ResolutionError as exc:
            logging.error("%s", exc)
            if result is ExitCodes.SUCCESS:
                result = exit_code_for(exc)
    return result


def main():
    """Main function of the program."""
    args = parse_args()
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main",
                                count=len(args.COORDINATES))
        )

    monitor = None if args.QUIET else ConsoleMonitor(sys.stderr)
    cancel = threading.Event()
    try:
        code = run(args, monitor=monitor, cancel=cancel)
    except KeyboardInterrupt:
        cancel.set()
        logging.warning("Interrupted.")
        code = ExitCodes.INTERRUPTED

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main",
                                outcome=code.name.lower())
        )
    sys.exit(code.value)


if __name__ == "__main__":
    main()
