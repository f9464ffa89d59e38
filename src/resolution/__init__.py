"""Artifact resolution engine.

Resolves ``group:artifact:version`` coordinates against an ordered list of
local, application and remote repositories, caching remote downloads in the
first writable repository.
"""

from .coordinate import Coordinate
from .errors import (
    AggregateNotFoundError,
    ArtifactNotFoundError,
    InvalidCoordinateError,
    RepositoryIOError,
    ResolutionError,
    ResolutionInterrupted,
    TransportError,
)
from .monitor import ConsoleMonitor, ResolutionMonitor
from .engine import ResolutionEngine, ResolvedArtifact

__all__ = [
    "Coordinate",
    "AggregateNotFoundError",
    "ArtifactNotFoundError",
    "InvalidCoordinateError",
    "RepositoryIOError",
    "ResolutionError",
    "ResolutionInterrupted",
    "TransportError",
    "ConsoleMonitor",
    "ResolutionMonitor",
    "ResolutionEngine",
    "ResolvedArtifact",
]
