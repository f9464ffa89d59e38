"""Repository variants and the builder registry."""

from .base import Repository, RepositoryBuilder, RepositoryRole, ResolutionResult
from .local import LocalRepository, LocalRepositoryBuilder
from .application import ApplicationRepository, ApplicationRepositoryBuilder
from .remote import RemoteRepository, RemoteRepositoryBuilder
from .registry import RepositoryRegistry, default_registry

__all__ = [
    "Repository",
    "RepositoryBuilder",
    "RepositoryRole",
    "ResolutionResult",
    "LocalRepository",
    "LocalRepositoryBuilder",
    "ApplicationRepository",
    "ApplicationRepositoryBuilder",
    "RemoteRepository",
    "RemoteRepositoryBuilder",
    "RepositoryRegistry",
    "default_registry",
]
