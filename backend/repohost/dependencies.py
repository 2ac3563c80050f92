"""
Shared service instances, exposed as FastAPI dependencies.

Tests replace ``get_repo_store`` (and friends) through
``app.dependency_overrides``; the derived services pick the override up.
"""
from functools import lru_cache

from fastapi import Depends

from repohost.config import get_settings
from repohost.services.access_policy import AccessPolicy
from repohost.services.auth import BasicAuthenticator
from repohost.services.engine import DulwichEngine
from repohost.services.inspection import InspectionService
from repohost.services.paths import PathResolver
from repohost.services.repo_store import RepositoryStore
from repohost.services.transport import GitServiceRunner, TransportResolver


@lru_cache
def get_repo_store() -> RepositoryStore:
    settings = get_settings()
    return RepositoryStore(PathResolver(settings.repos_root), DulwichEngine())


def get_inspection_service(
    store: RepositoryStore = Depends(get_repo_store),
) -> InspectionService:
    return InspectionService(store)


def get_git_service(store: RepositoryStore = Depends(get_repo_store)) -> GitServiceRunner:
    return GitServiceRunner(TransportResolver(store))


@lru_cache
def get_access_policy() -> AccessPolicy:
    return AccessPolicy(get_settings().git_prefix)


@lru_cache
def get_authenticator() -> BasicAuthenticator:
    settings = get_settings()
    return BasicAuthenticator(settings.users, realm=settings.auth_realm)
