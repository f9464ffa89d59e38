"""Explicit registry of repository builders keyed by repository kind.

Populated by the caller at startup; ``default_registry()`` covers the three
built-in kinds.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List

from constants import RepositoryKinds
from resolution.repositories.application import ApplicationRepositoryBuilder
from resolution.repositories.base import RepositoryBuilder
from resolution.repositories.local import LocalRepositoryBuilder
from resolution.repositories.remote import RemoteRepositoryBuilder

logger = logging.getLogger(__name__)

BuilderFactory = Callable[[], RepositoryBuilder]


class RepositoryRegistry:
    """Maps a repository kind (e.g. ``remote``) to a builder constructor."""

    def __init__(self):
        self._factories: Dict[str, BuilderFactory] = {}

    def register(self, kind: str, factory: BuilderFactory) -> None:
        """Register ``factory`` for ``kind``; re-registering replaces the previous one."""
        if kind in self._factories:
            logger.debug("Replacing repository builder for kind '%s'", kind)
        self._factories[kind] = factory

    def kinds(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, kind: object) -> bool:
        return kind in self._factories

    def builder(self, kind: str) -> RepositoryBuilder:
        """A fresh builder for ``kind``.

        Raises:
            KeyError: No builder registered for ``kind``.
        """
        try:
            factory = self._factories[kind]
        except KeyError:
            raise KeyError(
                f"No repository builder for kind '{kind}' (known: {', '.join(self.kinds())})"
            ) from None
        return factory()


def default_registry() -> RepositoryRegistry:
    """Registry pre-populated with the local, application and remote kinds."""
    registry = RepositoryRegistry()
    registry.register(RepositoryKinds.LOCAL.value, LocalRepositoryBuilder)
    registry.register(RepositoryKinds.APPLICATION.value, ApplicationRepositoryBuilder)
    registry.register(RepositoryKinds.REMOTE.value, RemoteRepositoryBuilder)
    return registry
