"""
Repository store - owns the on-disk repositories under the configured root.

Every lifecycle decision (reuse, recreate, reject, not found) is driven by
an explicit existence probe taken at the moment of use.
"""
import logging
import os
import shutil
from enum import Enum
from pathlib import Path

from repohost.errors import (
    AlreadyExists,
    ConfigurationError,
    InvalidIdentifier,
    RepositoryNotFound,
    UpstreamOperationFailed,
)
from repohost.services.engine import DulwichEngine, GitEngine, RepositoryHandle
from repohost.services.locking import RepositoryLocks
from repohost.services.paths import PathResolver

logger = logging.getLogger(__name__)


class ExistenceState(str, Enum):
    ABSENT = "absent"
    PRESENT_VALID = "present-valid"
    PRESENT_INVALID = "present-invalid"


def probe_existence(path: Path) -> ExistenceState:
    """Classify ``path`` as absent, a valid repository, or something else."""
    path = Path(path)
    if not path.is_dir():
        # A plain file still occupies the name
        return ExistenceState.PRESENT_INVALID if os.path.lexists(path) else ExistenceState.ABSENT
    if (path / ".git").is_dir():
        return ExistenceState.PRESENT_VALID
    if (path / "HEAD").is_file() and (path / "objects").is_dir() and (path / "refs").is_dir():
        return ExistenceState.PRESENT_VALID
    return ExistenceState.PRESENT_INVALID


def delete_directory(path: Path) -> None:
    """Best-effort recursive delete. Failures are logged, never raised."""
    path = Path(path)
    if not os.path.lexists(path):
        return
    logger.info("Deleting directory: %s", path)
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        logger.error("Error deleting directory %s: %s", path, e)


def contains_repository(path: Path) -> bool:
    """True if any directory below ``path`` is a valid repository. Symlinks are not followed."""
    for dirpath, dirnames, _ in os.walk(path):
        for dirname in dirnames:
            child = Path(dirpath) / dirname
            if not child.is_symlink() and probe_existence(child) is ExistenceState.PRESENT_VALID:
                return True
    return False


class RepositoryStore:
    """Creates, opens, lists and deletes repositories under one root."""

    def __init__(
        self,
        paths: PathResolver,
        engine: GitEngine | None = None,
        locks: RepositoryLocks | None = None,
    ):
        self.paths = paths
        self.engine = engine or DulwichEngine()
        self.locks = locks or RepositoryLocks()

    @property
    def root(self) -> Path:
        return self.paths.root_path

    def ensure_root(self) -> Path:
        """Create the repositories root if needed and check it is writable."""
        root = self.root
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create repositories root {root}", cause=str(e)
            ) from e
        if not root.is_dir() or not os.access(root, os.W_OK | os.X_OK):
            raise ConfigurationError(f"Repositories root {root} is not a writable directory")
        return root

    def probe(self, path: Path) -> ExistenceState:
        return probe_existence(path)

    def lock(self, identifier: str):
        """Exclusive lock for one repository, keyed by its normalized name."""
        return self.locks.hold(self.paths.normalize(identifier))

    def open_existing(self, identifier: str) -> RepositoryHandle:
        """Open a present, valid repository or raise RepositoryNotFound."""
        path = self.paths.locate(identifier)
        if probe_existence(path) is not ExistenceState.PRESENT_VALID:
            raise RepositoryNotFound(
                f"Repository '{identifier}' not found or is not a valid Git repository."
            )
        try:
            return self.engine.open(path)
        except Exception as e:
            raise UpstreamOperationFailed(
                f"Cannot open repository '{identifier}'", cause=str(e)
            ) from e

    def open_or_clone(self, identifier: str, remote_url: str) -> RepositoryHandle:
        """Open the local copy of ``identifier``, cloning ``remote_url`` on first use."""
        name = self.paths.normalize(identifier)
        path = self.paths.locate(identifier)

        with self.locks.hold(name):
            state = probe_existence(path)
            if state is ExistenceState.PRESENT_VALID:
                logger.info("Repository %s already exists at %s. Using existing.", name, path)
            else:
                if state is ExistenceState.PRESENT_INVALID:
                    logger.warning(
                        "Path %s exists but is not a valid Git repository. Deleting it before cloning.",
                        path,
                    )
                    delete_directory(path)
                self._clone(name, remote_url, path)

            try:
                return self.engine.open(path)
            except Exception as e:
                raise UpstreamOperationFailed(
                    f"Cannot open repository '{name}'", cause=str(e)
                ) from e

    def _clone(self, name: str, remote_url: str, path: Path) -> None:
        logger.info("Cloning repository %s from %s into %s", name, remote_url, path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.engine.clone(remote_url, path)
        except Exception as e:
            logger.error("Error cloning repository %s: %s", remote_url, e)
            delete_directory(path)
            raise UpstreamOperationFailed(
                f"Git operation failed while cloning '{remote_url}'", cause=str(e)
            ) from e
        logger.info("Repository %s cloned successfully to %s", name, path)

    def create_empty(self, name: str, bare: bool = False) -> Path:
        """Initialize a new empty repository named ``name`` (one path segment)."""
        path = self.paths.confine(self.paths.resolve_single_segment(name))
        key = self.paths.normalize(name)

        with self.locks.hold(key):
            state = probe_existence(path)
            if state is ExistenceState.PRESENT_VALID:
                logger.warning("Repository '%s' already exists as a Git repository at %s.", key, path)
                raise AlreadyExists(f"Repository '{key}' already exists as a Git repository.")
            if state is ExistenceState.PRESENT_INVALID:
                logger.warning("Directory '%s' already exists but is not a Git repository at %s.", key, path)
                raise AlreadyExists(
                    f"A directory (not a Git repository) named '{key}' already exists."
                )

            logger.info("Initializing new empty Git repository '%s' at %s", key, path)
            try:
                path.mkdir(parents=True)
            except OSError as e:
                raise UpstreamOperationFailed(
                    f"Cannot create directory for '{key}'", cause=str(e)
                ) from e
            try:
                self.engine.init(path, bare=bare)
            except Exception as e:
                logger.error("Failed to initialize Git repository '%s': %s", key, e)
                delete_directory(path)
                raise UpstreamOperationFailed(
                    f"Git operation failed during creation of '{key}'", cause=str(e)
                ) from e
        return path

    def delete_repository(self, identifier: str) -> bool:
        """Remove a repository directory. Returns False when nothing was there.

        A non-repository directory that still holds repositories further down
        (a namespace such as ``team/`` over ``team/project``) is refused.
        """
        name = self.paths.normalize(identifier)
        path = self.paths.locate(identifier)
        with self.locks.hold(name):
            state = probe_existence(path)
            if state is ExistenceState.ABSENT:
                return False
            if state is ExistenceState.PRESENT_INVALID and contains_repository(path):
                logger.warning("Refusing to delete %s: it contains repositories", path)
                raise AlreadyExists(
                    f"'{name}' is not a repository but contains repositories; delete those first."
                )
            delete_directory(path)
            if os.path.lexists(path):
                raise UpstreamOperationFailed(f"Could not delete repository '{name}'")
            return True

    def list_repositories(self) -> list[str]:
        """Names of the valid repositories directly under the root, sorted."""
        root = self.root
        if not root.is_dir():
            logger.warning(
                "Repositories root '%s' does not exist or is not a directory. No local repositories to list.",
                root,
            )
            return []

        names = sorted(
            entry.name
            for entry in root.iterdir()
            if entry.is_dir()
            and probe_existence(entry) is ExistenceState.PRESENT_VALID
            and self._inside_root(entry)
        )
        logger.debug("Found %d local repositories: %s", len(names), names)
        return names

    def _inside_root(self, path: Path) -> bool:
        try:
            self.paths.confine(path)
        except InvalidIdentifier:
            return False
        return True
