"""
Git engine capability interface and its dulwich implementation.

The repository lifecycle and inspection code only talks to ``GitEngine``;
tests substitute an in-memory fake, production uses ``DulwichEngine``.
"""
import logging
import os
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dulwich import porcelain
from dulwich.errors import NotTreeError
from dulwich.index import ConflictedIndexEntry
from dulwich.object_store import tree_lookup_path
from dulwich.objects import Blob, Commit
from dulwich.objectspec import parse_commit
from dulwich.repo import Repo as DulwichRepo

logger = logging.getLogger(__name__)


@dataclass
class PersonInfo:
    name: str
    email: str
    time: int
    """Seconds since the epoch."""
    offset: int
    """Offset east of UTC in seconds."""


@dataclass
class CommitInfo:
    id: str
    tree_id: str
    message: str
    author: PersonInfo
    committer: PersonInfo


@dataclass
class WorkingTreeStatus:
    """Partitioned working tree status, paths relative to the repository root."""

    added: set[str] = field(default_factory=set)
    changed: set[str] = field(default_factory=set)
    modified: set[str] = field(default_factory=set)
    missing: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)
    untracked: set[str] = field(default_factory=set)
    untracked_folders: set[str] = field(default_factory=set)
    conflicting_stage_state: dict[str, str] = field(default_factory=dict)

    @property
    def conflicting(self) -> set[str]:
        return set(self.conflicting_stage_state)

    @property
    def uncommitted_changes(self) -> set[str]:
        return (
            self.added | self.changed | self.modified | self.missing
            | self.removed | self.conflicting
        )

    @property
    def has_uncommitted_changes(self) -> bool:
        return bool(self.uncommitted_changes)

    @property
    def is_clean(self) -> bool:
        return not self.has_uncommitted_changes and not self.untracked


@dataclass
class RepositoryHandle:
    """An open repository, owned by exactly one operation."""

    path: Path
    bare: bool
    repo: Any
    closed: bool = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.repo.close()

    def __enter__(self) -> "RepositoryHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class GitEngine(ABC):
    """The Git primitives repohost relies on."""

    @abstractmethod
    def open(self, path: Path) -> RepositoryHandle:
        """Open the repository at ``path`` (working tree with .git, or bare root)."""
        ...

    @abstractmethod
    def resolve_ref(self, handle: RepositoryHandle, ref: str) -> Optional[str]:
        """Resolve a ref name, tag or commit id to a commit id, or None."""
        ...

    @abstractmethod
    def read_commit(self, handle: RepositoryHandle, commit_id: str) -> CommitInfo:
        ...

    @abstractmethod
    def walk_history(
        self, handle: RepositoryHandle, commit_id: str, max_count: int = 0, skip: int = 0
    ) -> list[CommitInfo]:
        """Commits reachable from ``commit_id``, most recent first.

        ``max_count`` <= 0 means no limit.
        """
        ...

    @abstractmethod
    def read_tree_filtered(self, handle: RepositoryHandle, tree_id: str, path: str) -> Optional[str]:
        """Blob id of the file at ``path`` inside ``tree_id``, or None."""
        ...

    @abstractmethod
    def read_blob(self, handle: RepositoryHandle, blob_id: str) -> bytes:
        ...

    @abstractmethod
    def list_refs(self, handle: RepositoryHandle) -> dict[str, str]:
        """All refs as full name -> commit id (HEAD excluded)."""
        ...

    @abstractmethod
    def head_ref(self, handle: RepositoryHandle) -> Optional[str]:
        """Full ref HEAD points at (e.g. refs/heads/main), a commit id when
        detached, or None."""
        ...

    @abstractmethod
    def compute_status(self, handle: RepositoryHandle) -> WorkingTreeStatus:
        ...

    @abstractmethod
    def clone(self, remote_url: str, target: Path) -> None:
        """Clone every branch of ``remote_url`` into ``target``."""
        ...

    @abstractmethod
    def init(self, path: Path, bare: bool = False) -> None:
        """Initialize an empty repository in the existing directory ``path``."""
        ...


def _split_identity(identity: bytes) -> tuple[str, str]:
    """Split ``Name <email>`` into its parts."""
    text = identity.decode("utf-8", errors="replace")
    name, sep, rest = text.partition("<")
    if not sep:
        return text.strip(), ""
    return name.strip(), rest.rstrip().rstrip(">")


def _commit_info(commit: Commit) -> CommitInfo:
    author_name, author_email = _split_identity(commit.author)
    committer_name, committer_email = _split_identity(commit.committer)
    encoding = commit.encoding.decode("ascii") if commit.encoding else "utf-8"
    return CommitInfo(
        id=commit.id.decode("ascii"),
        tree_id=commit.tree.decode("ascii"),
        message=commit.message.decode(encoding, errors="replace"),
        author=PersonInfo(author_name, author_email, commit.author_time, commit.author_timezone),
        committer=PersonInfo(
            committer_name, committer_email, commit.commit_time, commit.commit_timezone
        ),
    )


def _stage_state(entry: ConflictedIndexEntry) -> str:
    present = (entry.ancestor is not None, entry.this is not None, entry.other is not None)
    return {
        (True, False, False): "BOTH_DELETED",
        (False, True, False): "ADDED_BY_US",
        (True, True, False): "DELETED_BY_THEM",
        (False, False, True): "ADDED_BY_THEM",
        (True, False, True): "DELETED_BY_US",
        (False, True, True): "BOTH_ADDED",
        (True, True, True): "BOTH_MODIFIED",
    }.get(present, "BOTH_MODIFIED")


def _untracked_folders(untracked: set[str], tracked: set[str]) -> set[str]:
    """Top-most directories that contain untracked files and nothing tracked."""
    tracked_dirs = set()
    for path in tracked:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            tracked_dirs.add("/".join(parts[:i]))

    folders = set()
    for path in untracked:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            candidate = "/".join(parts[:i])
            if candidate not in tracked_dirs:
                folders.add(candidate)
                break
    return folders


class DulwichEngine(GitEngine):
    """GitEngine backed by dulwich."""

    def open(self, path: Path) -> RepositoryHandle:
        # dulwich uses path/.git when present, else treats path as a bare root
        repo = DulwichRepo(str(path))
        return RepositoryHandle(path=Path(path), bare=repo.bare, repo=repo)

    def resolve_ref(self, handle: RepositoryHandle, ref: str) -> Optional[str]:
        try:
            commit = parse_commit(handle.repo, ref.encode("utf-8"))
        except (KeyError, ValueError):
            return None
        return commit.id.decode("ascii")

    def read_commit(self, handle: RepositoryHandle, commit_id: str) -> CommitInfo:
        commit = handle.repo[commit_id.encode("ascii")]
        return _commit_info(commit)

    def walk_history(
        self, handle: RepositoryHandle, commit_id: str, max_count: int = 0, skip: int = 0
    ) -> list[CommitInfo]:
        skip = max(skip, 0)
        max_entries = skip + max_count if max_count > 0 else None
        walker = handle.repo.get_walker(include=[commit_id.encode("ascii")], max_entries=max_entries)
        commits = []
        for index, entry in enumerate(walker):
            if index < skip:
                continue
            commits.append(_commit_info(entry.commit))
        return commits

    def read_tree_filtered(self, handle: RepositoryHandle, tree_id: str, path: str) -> Optional[str]:
        path = path.strip("/")
        if not path:
            return None
        object_store = handle.repo.object_store
        try:
            mode, sha = tree_lookup_path(object_store.__getitem__, tree_id.encode("ascii"), path.encode("utf-8"))
        except (KeyError, NotTreeError):
            return None
        # Directories and submodules are not files
        if stat.S_ISDIR(mode) or not isinstance(object_store[sha], Blob):
            return None
        return sha.decode("ascii")

    def read_blob(self, handle: RepositoryHandle, blob_id: str) -> bytes:
        return handle.repo.object_store[blob_id.encode("ascii")].data

    def list_refs(self, handle: RepositoryHandle) -> dict[str, str]:
        refs = {}
        for ref_name, sha in handle.repo.get_refs().items():
            if ref_name == b"HEAD":
                continue
            refs[ref_name.decode("utf-8")] = sha.decode("ascii")
        return refs

    def head_ref(self, handle: RepositoryHandle) -> Optional[str]:
        try:
            head = handle.repo.refs.read_ref(b"HEAD")
        except KeyError:
            return None
        if not head:
            return None
        if head.startswith(b"ref: "):
            return head[5:].strip().decode("utf-8")
        return head.strip().decode("ascii")

    def compute_status(self, handle: RepositoryHandle) -> WorkingTreeStatus:
        repo = handle.repo
        result = porcelain.status(repo, untracked_files="all")
        index = repo.open_index()

        status = WorkingTreeStatus(
            added={os.fsdecode(p) for p in result.staged["add"]},
            changed={os.fsdecode(p) for p in result.staged["modify"]},
            removed={os.fsdecode(p) for p in result.staged["delete"]},
        )
        for path, entry in index.items():
            if isinstance(entry, ConflictedIndexEntry):
                status.conflicting_stage_state[os.fsdecode(path)] = _stage_state(entry)

        for tree_path in result.unstaged:
            rel_path = os.fsdecode(tree_path)
            if rel_path in status.conflicting_stage_state:
                continue
            if os.path.lexists(os.path.join(repo.path, *rel_path.split("/"))):
                status.modified.add(rel_path)
            else:
                status.missing.add(rel_path)

        status.untracked = {
            os.fsdecode(p).replace(os.sep, "/").rstrip("/") for p in result.untracked
        }
        tracked = {os.fsdecode(p) for p in index}
        status.untracked_folders = _untracked_folders(status.untracked, tracked)
        return status

    def clone(self, remote_url: str, target: Path) -> None:
        logger.info("Cloning %s into %s", remote_url, target)
        repo = porcelain.clone(remote_url, str(target))
        repo.close()

    def init(self, path: Path, bare: bool = False) -> None:
        if bare:
            repo = DulwichRepo.init_bare(str(path))
        else:
            repo = DulwichRepo.init(str(path))
        repo.close()
