"""
In-memory GitEngine for tests that should not depend on dulwich.

Clone and init only lay down the minimal on-disk markers the existence
probe looks for; history, trees and status are whatever the test seeds.
"""
import threading
import time
from pathlib import Path
from typing import Optional

from repohost.services.engine import (
    CommitInfo,
    GitEngine,
    PersonInfo,
    RepositoryHandle,
    WorkingTreeStatus,
)


class FakeRepo:
    """Stands in for a dulwich Repo; only tracks whether it was closed."""

    def __init__(self, path: Path):
        self.path = path
        self.closed = False

    def close(self):
        self.closed = True


class FakeGitEngine(GitEngine):
    """Scriptable GitEngine.

    Args:
        fail_clone: clone writes a partial directory, then raises
        fail_init: init writes a stray file, then raises
        clone_delay: seconds each clone sleeps (to widen race windows)
    """

    def __init__(self, fail_clone: bool = False, fail_init: bool = False, clone_delay: float = 0.0):
        self.fail_clone = fail_clone
        self.fail_init = fail_init
        self.clone_delay = clone_delay

        self.clone_calls: list[tuple[str, Path]] = []
        self.init_calls: list[tuple[Path, bool]] = []
        self.opened: list[FakeRepo] = []
        self._calls_lock = threading.Lock()

        # Newest first
        self.history: list[CommitInfo] = []
        self.refs: dict[str, str] = {}
        self.head: Optional[str] = "refs/heads/main"
        # tree id -> {path: blob id}
        self.trees: dict[str, dict[str, str]] = {}
        self.blobs: dict[str, bytes] = {}
        self.status = WorkingTreeStatus()

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_commit(
        self,
        message: str,
        files: dict[str, bytes] | None = None,
        branch: str = "refs/heads/main",
        timestamp: int = 1700000000,
    ) -> str:
        """Append a commit on ``branch`` and return its id."""
        index = len(self.history) + 1
        commit_id = f"{index:040x}"
        tree_id = f"{index:040x}"[::-1]
        self.trees[tree_id] = {}
        for path, content in (files or {}).items():
            blob_id = f"b{len(self.blobs):039x}"
            self.blobs[blob_id] = content
            self.trees[tree_id][path] = blob_id

        person = PersonInfo("Test Author", "test@example.com", timestamp + index, 0)
        self.history.insert(0, CommitInfo(commit_id, tree_id, message, person, person))
        self.refs[branch] = commit_id
        return commit_id

    @property
    def open_handles(self) -> list[FakeRepo]:
        return [repo for repo in self.opened if not repo.closed]

    # -------------------------------------------------------------------------
    # GitEngine
    # -------------------------------------------------------------------------

    def open(self, path: Path) -> RepositoryHandle:
        repo = FakeRepo(Path(path))
        self.opened.append(repo)
        bare = not (Path(path) / ".git").is_dir()
        return RepositoryHandle(path=Path(path), bare=bare, repo=repo)

    def resolve_ref(self, handle: RepositoryHandle, ref: str) -> Optional[str]:
        if ref == "HEAD":
            ref = self.head or ""
        for candidate in (ref, f"refs/heads/{ref}", f"refs/tags/{ref}"):
            if candidate in self.refs:
                return self.refs[candidate]
        if any(commit.id == ref for commit in self.history):
            return ref
        return None

    def read_commit(self, handle: RepositoryHandle, commit_id: str) -> CommitInfo:
        for commit in self.history:
            if commit.id == commit_id:
                return commit
        raise KeyError(commit_id)

    def walk_history(
        self, handle: RepositoryHandle, commit_id: str, max_count: int = 0, skip: int = 0
    ) -> list[CommitInfo]:
        ids = [commit.id for commit in self.history]
        reachable = self.history[ids.index(commit_id):]
        reachable = reachable[max(skip, 0):]
        return reachable[:max_count] if max_count > 0 else reachable

    def read_tree_filtered(self, handle: RepositoryHandle, tree_id: str, path: str) -> Optional[str]:
        return self.trees.get(tree_id, {}).get(path.strip("/"))

    def read_blob(self, handle: RepositoryHandle, blob_id: str) -> bytes:
        return self.blobs[blob_id]

    def list_refs(self, handle: RepositoryHandle) -> dict[str, str]:
        return dict(self.refs)

    def head_ref(self, handle: RepositoryHandle) -> Optional[str]:
        return self.head

    def compute_status(self, handle: RepositoryHandle) -> WorkingTreeStatus:
        return self.status

    def clone(self, remote_url: str, target: Path) -> None:
        with self._calls_lock:
            self.clone_calls.append((remote_url, Path(target)))
        if self.clone_delay:
            time.sleep(self.clone_delay)
        Path(target).mkdir(parents=True, exist_ok=True)
        if self.fail_clone:
            (Path(target) / "partial.pack").write_bytes(b"incomplete")
            raise RuntimeError(f"simulated clone failure for {remote_url}")
        (Path(target) / ".git").mkdir()

    def init(self, path: Path, bare: bool = False) -> None:
        self.init_calls.append((Path(path), bare))
        if self.fail_init:
            (Path(path) / "stray").write_text("half-initialized")
            raise RuntimeError("simulated init failure")
        if bare:
            (Path(path) / "HEAD").write_text("ref: refs/heads/main\n")
            (Path(path) / "objects").mkdir()
            (Path(path) / "refs").mkdir()
        else:
            (Path(path) / ".git").mkdir()
