"""
Helpers that build real dulwich repositories on disk for tests.
"""
import os
from pathlib import Path

import pytest
from dulwich import porcelain
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo

TEST_IDENTITY = b"Test Author <test@example.com>"
# 2023-11-14 22:13:20 UTC
FIXED_TIME = 1700000000


def init_repo(path: Path, bare: bool = False, branch: str = "main") -> Path:
    """Initialize a repository whose HEAD points at ``branch``."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    repo = Repo.init_bare(str(path)) if bare else Repo.init(str(path))
    try:
        repo.refs.set_symbolic_ref(b"HEAD", f"refs/heads/{branch}".encode())
    finally:
        repo.close()
    return path


def commit_files(path: Path, files: dict[str, bytes | str], message: str = "Initial commit") -> str:
    """Write ``files`` into a working tree, stage and commit them.

    Returns the new commit id.
    """
    path = Path(path)
    repo = Repo(str(path))
    try:
        for name, content in files.items():
            target = path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, str):
                content = content.encode("utf-8")
            target.write_bytes(content)
        porcelain.add(repo, paths=[str(path / name) for name in files])
        commit_id = porcelain.commit(
            repo,
            message=message.encode("utf-8"),
            author=TEST_IDENTITY,
            committer=TEST_IDENTITY,
        )
    finally:
        repo.close()
    return commit_id.decode("ascii")


def commit_to_bare(
    path: Path,
    files: dict[str, bytes],
    message: str = "Initial commit",
    branch: str = "main",
    timestamp: int = FIXED_TIME,
    timezone: int = 0,
) -> str:
    """Create a commit directly in the object store of a bare repository.

    ``files`` must be top-level names. The commit's parent is the current
    tip of ``branch`` when there is one.
    """
    ref = f"refs/heads/{branch}".encode()
    repo = Repo(str(path))
    try:
        tree = Tree()
        for name, content in files.items():
            blob = Blob.from_string(content)
            repo.object_store.add_object(blob)
            tree.add(name.encode("utf-8"), 0o100644, blob.id)
        repo.object_store.add_object(tree)

        commit = Commit()
        commit.tree = tree.id
        commit.parents = [repo.refs[ref]] if ref in repo.refs else []
        commit.author = commit.committer = TEST_IDENTITY
        commit.author_time = commit.commit_time = timestamp
        commit.author_timezone = commit.commit_timezone = timezone
        commit.encoding = b"UTF-8"
        commit.message = message.encode("utf-8")
        repo.object_store.add_object(commit)
        repo.refs[ref] = commit.id
    finally:
        repo.close()
    return commit.id.decode("ascii")


def make_symlink(link: Path, target: Path) -> Path:
    """Create directory symlink ``link`` -> ``target``, skipping where symlinks are unavailable."""
    link = Path(link)
    link.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.symlink(target, link, target_is_directory=True)
    except (OSError, NotImplementedError) as e:
        pytest.skip(f"symlinks not supported here: {e}")
    return link
