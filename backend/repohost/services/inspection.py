"""
Read-only inspection of served repositories: status, log, file contents.

Each call opens its own handle through the RepositoryStore and closes it
before returning. Engine failures are reported as UpstreamOperationFailed.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from repohost.errors import (
    PathNotFound,
    RefNotFound,
    RepositoryHostError,
    UnsupportedForBareRepository,
    UpstreamOperationFailed,
)
from repohost.schemas import CommitRecord, PersonRecord, RepositorySummary, StatusReport
from repohost.services.engine import CommitInfo, PersonInfo, RepositoryHandle
from repohost.services.repo_store import RepositoryStore

logger = logging.getLogger(__name__)

BRANCH_PREFIXES = ("refs/heads/", "refs/remotes/")
FALLBACK_BRANCHES = ("refs/heads/main", "refs/heads/master")


def format_timestamp(seconds: int, offset: int) -> str:
    """Render ``yyyy-MM-dd HH:mm:ss +hhmm`` in the recorded timezone."""
    tz = timezone(timedelta(seconds=offset))
    return datetime.fromtimestamp(seconds, tz).strftime("%Y-%m-%d %H:%M:%S %z")


def _person(person: PersonInfo) -> PersonRecord:
    return PersonRecord(
        name=person.name,
        email=person.email,
        timestamp=format_timestamp(person.time, person.offset),
    )


def _commit_record(commit: CommitInfo) -> CommitRecord:
    lines = commit.message.strip().splitlines()
    return CommitRecord(
        hash=commit.id,
        short_message=lines[0] if lines else "",
        full_message=commit.message,
        author=_person(commit.author),
        committer=_person(commit.committer),
    )


@contextmanager
def _engine_errors(action: str, name: str) -> Iterator[None]:
    try:
        yield
    except RepositoryHostError:
        raise
    except Exception as e:
        logger.error("Git engine failed to %s for '%s': %s", action, name, e)
        raise UpstreamOperationFailed(f"Failed to {action} for repository '{name}'", cause=str(e)) from e


class InspectionService:
    """Status, history and file queries against existing repositories."""

    def __init__(self, store: RepositoryStore):
        self.store = store

    @property
    def engine(self):
        return self.store.engine

    def status(self, name: str) -> StatusReport:
        with self.store.open_existing(name) as handle, _engine_errors("compute status", name):
            if handle.bare:
                raise UnsupportedForBareRepository(
                    f"Cannot get status for a bare repository: {name}"
                )
            status = self.engine.compute_status(handle)
            return StatusReport(
                repository=name,
                current_branch=self.engine.head_ref(handle),
                is_clean=status.is_clean,
                has_uncommitted_changes=status.has_uncommitted_changes,
                added=sorted(status.added),
                changed=sorted(status.changed),
                modified=sorted(status.modified),
                missing=sorted(status.missing),
                removed=sorted(status.removed),
                untracked=sorted(status.untracked),
                untracked_folders=sorted(status.untracked_folders),
                conflicting=sorted(status.conflicting),
                uncommitted_changes=sorted(status.uncommitted_changes),
                conflicting_stage_state=dict(sorted(status.conflicting_stage_state.items())),
            )

    def log(self, name: str, ref: str = "HEAD", max_count: int = 20, skip: int = 0) -> list[CommitRecord]:
        """Commits reachable from ``ref``, newest first. max_count <= 0 is unbounded."""
        with self.store.open_existing(name) as handle, _engine_errors("read the log", name):
            commit_id = self.engine.resolve_ref(handle, ref)
            if commit_id is None:
                raise RefNotFound(
                    f"Branch or reference '{ref}' not found in repository '{name}'."
                )
            commits = self.engine.walk_history(handle, commit_id, max_count=max_count, skip=skip)
            return [_commit_record(commit) for commit in commits]

    def file_content(self, name: str, path: str, ref: str = "HEAD") -> str:
        """Text of ``path`` as of ``ref``.

        Invalid UTF-8 is replaced rather than rejected.
        """
        with self.store.open_existing(name) as handle, _engine_errors("read a file", name):
            commit_id = self.engine.resolve_ref(handle, ref)
            if commit_id is None:
                raise RefNotFound(
                    f"Reference '{ref}' not found in repository '{name}'."
                )
            tree_id = self.engine.read_commit(handle, commit_id).tree_id
            blob_id = self.engine.read_tree_filtered(handle, tree_id, path)
            if blob_id is None:
                raise PathNotFound(
                    f"File '{path}' not found in reference '{ref}' of repository '{name}'."
                )
            return self.engine.read_blob(handle, blob_id).decode("utf-8", errors="replace")

    def list_branches(self, handle: RepositoryHandle) -> list[str]:
        return sorted(
            ref
            for ref in self.engine.list_refs(handle)
            if ref.startswith(BRANCH_PREFIXES) and not ref.endswith("/HEAD")
        )

    def latest_commit(self, handle: RepositoryHandle) -> Optional[str]:
        """Tip of the default branch: HEAD, then main, then master, then the first local branch."""
        candidates = []
        head = self.engine.head_ref(handle)
        if head:
            candidates.append(head)
        candidates.extend(FALLBACK_BRANCHES)
        local = sorted(ref for ref in self.engine.list_refs(handle) if ref.startswith("refs/heads/"))
        candidates.extend(local[:1])

        for ref in candidates:
            commit_id = self.engine.resolve_ref(handle, ref)
            if commit_id is not None:
                return commit_id
        return None

    def summarize(self, handle: RepositoryHandle, name: str, remote_url: str) -> RepositorySummary:
        with _engine_errors("summarize", name):
            return RepositorySummary(
                name=name,
                remote_url=remote_url,
                local_path=str(handle.path),
                branches=self.list_branches(handle),
                latest_commit_hash=self.latest_commit(handle),
            )
