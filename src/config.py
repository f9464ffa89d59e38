"""Repository configuration loaded from YAML.

Example::

    http:
      connect_timeout: 10
      read_timeout: 30
    repositories:
      - kind: application
        root: ~/.gavfetch/repository
      - kind: local
        root: ~/.m2/repository
      - kind: remote
        id: central
        root: https://repo1.maven.org/maven2
        snapshots: false

Without a configuration file the defaults are the application store, the
user's ~/.m2 repository and Maven Central, in that order.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants, RepositoryKinds
from common.http_client import HttpClientFactory
from resolution.repositories.base import Repository
from resolution.repositories.registry import RepositoryRegistry, default_registry

logger = logging.getLogger(__name__)

_REPOSITORY_KEYS = {"kind", "id", "name", "root", "releases", "snapshots"}


class ConfigError(ValueError):
    """The configuration file is unreadable or describes invalid repositories."""


@dataclass
class RepositoryDef:
    """One repository entry from the configuration."""

    kind: str
    root: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    releases: Optional[bool] = None
    snapshots: Optional[bool] = None


@dataclass
class ResolverConfig:
    """Parsed configuration."""

    repositories: List[RepositoryDef] = field(default_factory=list)
    connect_timeout: float = Constants.CONNECT_TIMEOUT
    read_timeout: float = Constants.READ_TIMEOUT
    source: Optional[str] = None

    @classmethod
    def defaults(cls) -> "ResolverConfig":
        return cls(repositories=[
            RepositoryDef(kind=RepositoryKinds.APPLICATION.value),
            RepositoryDef(kind=RepositoryKinds.LOCAL.value),
            RepositoryDef(kind=RepositoryKinds.REMOTE.value),
        ])

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: Optional[str] = None) -> "ResolverConfig":
        """Validate and convert a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ConfigError(f"{source or 'config'}: top level must be a mapping")

        config = cls.defaults() if "repositories" not in data else cls()
        config.source = source

        http = data.get("http") or {}
        if not isinstance(http, dict):
            raise ConfigError(f"{source or 'config'}: 'http' must be a mapping")
        try:
            config.connect_timeout = float(http.get("connect_timeout", config.connect_timeout))
            config.read_timeout = float(http.get("read_timeout", config.read_timeout))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{source or 'config'}: invalid timeout: {exc}") from exc

        entries = data.get("repositories")
        if entries is None:
            return config
        if not isinstance(entries, list) or not entries:
            raise ConfigError(f"{source or 'config'}: 'repositories' must be a non-empty list")
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ConfigError(f"{source or 'config'}: repository #{index + 1} must be a mapping")
            unknown = set(entry) - _REPOSITORY_KEYS
            if unknown:
                raise ConfigError(
                    f"{source or 'config'}: repository #{index + 1} has unknown keys: "
                    f"{', '.join(sorted(unknown))}"
                )
            if not entry.get("kind"):
                raise ConfigError(f"{source or 'config'}: repository #{index + 1} has no kind")
            config.repositories.append(RepositoryDef(
                kind=str(entry["kind"]),
                root=None if entry.get("root") is None else str(entry["root"]),
                id=entry.get("id"),
                name=entry.get("name"),
                releases=entry.get("releases"),
                snapshots=entry.get("snapshots"),
            ))
        return config

    def http_factory(self) -> HttpClientFactory:
        return HttpClientFactory(
            connect_timeout=self.connect_timeout, read_timeout=self.read_timeout
        )

    def build_repositories(
        self, registry: Optional[RepositoryRegistry] = None
    ) -> List[Repository]:
        """Instantiate repositories through the registry, in configured order."""
        registry = registry or default_registry()
        factory = self.http_factory()
        repos: List[Repository] = []
        for definition in self.repositories:
            if definition.kind not in registry:
                raise ConfigError(
                    f"Unknown repository kind '{definition.kind}' "
                    f"(known: {', '.join(registry.kinds())})"
                )
            builder = registry.builder(definition.kind)
            if definition.name:
                builder.with_name(definition.name)
            if definition.root:
                builder.with_root(definition.root)
            if definition.id:
                with_id = getattr(builder, "with_id", None)
                if with_id is None:
                    if definition.id != builder.id:
                        raise ConfigError(
                            f"{definition.kind} repository must have id '{builder.id}', "
                            f"got '{definition.id}'"
                        )
                else:
                    with_id(definition.id)
            if definition.releases is not None and hasattr(builder, "with_releases"):
                builder.with_releases(bool(definition.releases))
            if definition.snapshots is not None and hasattr(builder, "with_snapshots"):
                builder.with_snapshots(bool(definition.snapshots))
            if hasattr(builder, "with_http_factory"):
                builder.with_http_factory(factory)
            try:
                repos.append(builder.build())
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        return repos


def find_config_path(explicit: Optional[str] = None) -> Optional[str]:
    """Explicit path, then $GAVFETCH_CONFIG, then the per-user default if it exists."""
    if explicit:
        return explicit
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        return env_path
    default = os.path.expanduser(Constants.DEFAULT_CONFIG_PATH)
    if os.path.isfile(default):
        return default
    return None


def load_config(path: Optional[str] = None) -> ResolverConfig:
    """Load configuration from ``path`` (or the discovered default).

    Raises:
        ConfigError: File missing when explicitly requested, unreadable or invalid.
    """
    config_path = find_config_path(path)
    if config_path is None:
        logger.debug("No configuration file, using default repositories")
        return ResolverConfig.defaults()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config {config_path}: {exc}") from exc

    logger.info("Loaded repository config from: %s", config_path)
    return ResolverConfig.from_dict(data or {}, source=config_path)
