"""Hierarchical repository layout shared by every repository variant.

``root / group-with-dots-as-dirs / artifact / version / artifact-version[-classifier].ext``

Local paths and remote URLs are built from the same segments so the on-disk
cache mirrors the remote layout exactly.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Union

from resolution.coordinate import Coordinate
from resolution.errors import InvalidCoordinateError


def file_name(coord: Coordinate, version: Optional[str] = None) -> str:
    """Artifact file name, optionally for a different (e.g. timestamped) version."""
    name = f"{coord.artifact}-{version or coord.version}"
    if coord.classifier:
        name = f"{name}-{coord.classifier}"
    return f"{name}.{coord.extension}"


def directory_parts(coord: Coordinate) -> List[str]:
    """Group segments, artifact id and version; an absent group contributes nothing."""
    parts = [segment for segment in (coord.group or "").split(".") if segment]
    parts.append(coord.artifact)
    parts.append(coord.version)
    return parts


def relative_parts(coord: Coordinate) -> List[str]:
    """All path segments below a repository root."""
    return directory_parts(coord) + [file_name(coord)]


def relative_path(coord: Coordinate) -> str:
    """Slash separated suffix, identical for local and remote repositories."""
    return "/".join(relative_parts(coord))


def local_path(root: Union[str, Path], coord: Coordinate) -> Path:
    """Filesystem location of ``coord`` under ``root``.

    Raises:
        InvalidCoordinateError: The laid out path would leave ``root``.
    """
    base = os.path.abspath(os.fspath(root))
    path = os.path.abspath(os.path.join(base, *relative_parts(coord)))
    if os.path.commonpath([base, path]) != base or path == base:
        raise InvalidCoordinateError(f"Coordinate {coord} does not map below {base}")
    return Path(root).joinpath(*relative_parts(coord))


def remote_url(base_url: str, coord: Coordinate) -> str:
    """URL of ``coord`` under ``base_url``, always joined with ``/``."""
    return f"{base_url.rstrip('/')}/{relative_path(coord)}"


def remote_directory_url(base_url: str, coord: Coordinate) -> str:
    """URL of the version directory, with a trailing slash."""
    return f"{base_url.rstrip('/')}/{'/'.join(directory_parts(coord))}/"
