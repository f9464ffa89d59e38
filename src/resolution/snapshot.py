"""Parsing of per-version ``maven-metadata.xml`` for snapshot builds."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from constants import Constants

TIMESTAMP_FMT = "%Y%m%d.%H%M%S"
UPDATED_FMT = "%Y%m%d%H%M%S"


class SnapshotMetadataError(ValueError):
    """Metadata document is malformed or lacks the requested build."""


@dataclass(frozen=True)
class SnapshotVersion:
    """One published file of a snapshot build."""

    value: str
    updated: Optional[datetime] = None


@dataclass
class SnapshotMetadata:
    """Snapshot build information for one ``group:artifact:version``."""

    group: str
    artifact: str
    version: Optional[str]
    timestamp: Optional[datetime] = None
    build_number: Optional[int] = None
    last_updated: Optional[datetime] = None
    versions: Dict[Tuple[str, str], SnapshotVersion] = field(default_factory=dict)

    def get(self, extension: str = Constants.DEFAULT_EXTENSION,
            classifier: Optional[str] = None) -> SnapshotVersion:
        """Timestamped version for an extension/classifier pair.

        Falls back to ``timestamp-buildNumber`` substitution when the document
        has no ``snapshotVersions`` block (older deployers omit it).
        """
        key = (extension, classifier or "")
        if key in self.versions:
            return self.versions[key]
        if (not self.versions and self.version and self.timestamp is not None
                and self.build_number is not None):
            stamp = self.timestamp.strftime(TIMESTAMP_FMT)
            value = self.version.replace("SNAPSHOT", f"{stamp}-{self.build_number}")
            return SnapshotVersion(value=value, updated=self.last_updated)
        raise SnapshotMetadataError(
            f"No snapshot build for classifier '{classifier or '<none>'}' "
            f"extension '{extension}' of {self.group}:{self.artifact}"
        )


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]
    return root


def _text(elem: Optional[ET.Element], path: str) -> Optional[str]:
    if elem is None:
        return None
    node = elem.find(path)
    if node is None or node.text is None:
        return None
    text = node.text.strip()
    return text or None


def _parse_time(value: Optional[str], fmt: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
    except ValueError as exc:
        raise SnapshotMetadataError(f"Could not parse timestamp '{value}'") from exc


def parse_snapshot_metadata(content) -> SnapshotMetadata:
    """Parse a ``maven-metadata.xml`` document (bytes or str).

    Raises:
        SnapshotMetadataError: Not XML, or missing groupId/artifactId.
    """
    try:
        root = _strip_namespaces(ET.fromstring(content))
    except ET.ParseError as exc:
        raise SnapshotMetadataError(f"Invalid metadata XML: {exc}") from exc

    group = _text(root, "groupId")
    artifact = _text(root, "artifactId")
    if group is None:
        raise SnapshotMetadataError("Meta-data has no groupId")
    if artifact is None:
        raise SnapshotMetadataError("Meta-data has no artifactId")

    meta = SnapshotMetadata(group=group, artifact=artifact, version=_text(root, "version"))
    versioning = root.find("versioning")
    if versioning is None:
        return meta

    meta.last_updated = _parse_time(_text(versioning, "lastUpdated"), UPDATED_FMT)
    meta.timestamp = _parse_time(_text(versioning, "snapshot/timestamp"), TIMESTAMP_FMT)
    build = _text(versioning, "snapshot/buildNumber")
    if build is not None:
        try:
            meta.build_number = int(build)
        except ValueError as exc:
            raise SnapshotMetadataError(f"Invalid buildNumber '{build}'") from exc

    for item in versioning.findall("snapshotVersions/snapshotVersion"):
        value = _text(item, "value")
        if value is None:
            continue
        key = (_text(item, "extension") or "", _text(item, "classifier") or "")
        meta.versions[key] = SnapshotVersion(
            value=value, updated=_parse_time(_text(item, "updated"), UPDATED_FMT)
        )
    return meta
