"""
Unit tests for DulwichEngine against real repositories on disk.

These tests verify:
- init of working-tree and bare repositories
- Ref resolution, history walking and tree lookups
- Working tree status partitioning
- Clone from a local repository
"""
import sys
from pathlib import Path

import pytest

# Add backend and tdd to path for imports
backend_path = Path(__file__).parent.parent.parent.parent / "backend"
tdd_path = Path(__file__).parent.parent.parent.parent / "tdd"
sys.path.insert(0, str(backend_path))
sys.path.insert(0, str(tdd_path))

from repohost.services.engine import DulwichEngine, _untracked_folders
from repohost.services.repo_store import ExistenceState, probe_existence
from shared.git_helpers import commit_files, commit_to_bare, init_repo


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def engine():
    return DulwichEngine()


@pytest.fixture
def work_repo(temp_repos_dir):
    """Working-tree repository with two commits on main."""
    path = init_repo(temp_repos_dir / "work")
    first = commit_files(path, {"README.md": "hello"}, message="Initial commit")
    second = commit_files(path, {"docs/guide.md": "guide"}, message="Add guide\n\nLonger body.")
    return path, first, second


@pytest.fixture
def handle(engine, work_repo):
    path, _, _ = work_repo
    with engine.open(path) as handle:
        yield handle


# -----------------------------------------------------------------------------
# Init / Open Tests
# -----------------------------------------------------------------------------

class TestInitAndOpen:
    """Tests for DulwichEngine.init() and open()."""

    def test_init_working_tree(self, engine, temp_repos_dir):
        path = temp_repos_dir / "fresh"
        path.mkdir()
        engine.init(path)
        assert probe_existence(path) is ExistenceState.PRESENT_VALID
        with engine.open(path) as handle:
            assert not handle.bare

    def test_init_bare(self, engine, temp_repos_dir):
        path = temp_repos_dir / "fresh"
        path.mkdir()
        engine.init(path, bare=True)
        assert probe_existence(path) is ExistenceState.PRESENT_VALID
        with engine.open(path) as handle:
            assert handle.bare

    def test_handle_close_is_idempotent(self, engine, work_repo):
        handle = engine.open(work_repo[0])
        handle.close()
        handle.close()
        assert handle.closed


# -----------------------------------------------------------------------------
# Ref And History Tests
# -----------------------------------------------------------------------------

class TestResolveRef:
    """Tests for DulwichEngine.resolve_ref()."""

    def test_head(self, engine, handle, work_repo):
        assert engine.resolve_ref(handle, "HEAD") == work_repo[2]

    def test_short_branch_name(self, engine, handle, work_repo):
        assert engine.resolve_ref(handle, "main") == work_repo[2]

    def test_full_ref_name(self, engine, handle, work_repo):
        assert engine.resolve_ref(handle, "refs/heads/main") == work_repo[2]

    def test_commit_id(self, engine, handle, work_repo):
        assert engine.resolve_ref(handle, work_repo[1]) == work_repo[1]

    def test_unknown_ref(self, engine, handle):
        assert engine.resolve_ref(handle, "no-such-branch") is None

    def test_head_of_empty_repository(self, engine, temp_repos_dir):
        path = init_repo(temp_repos_dir / "empty")
        with engine.open(path) as handle:
            assert engine.resolve_ref(handle, "HEAD") is None


class TestWalkHistory:
    """Tests for DulwichEngine.walk_history()."""

    def test_newest_first(self, engine, handle, work_repo):
        _, first, second = work_repo
        commits = engine.walk_history(handle, second)
        assert [c.id for c in commits] == [second, first]

    def test_max_count(self, engine, handle, work_repo):
        commits = engine.walk_history(handle, work_repo[2], max_count=1)
        assert [c.id for c in commits] == [work_repo[2]]

    def test_skip(self, engine, handle, work_repo):
        commits = engine.walk_history(handle, work_repo[2], skip=1)
        assert [c.id for c in commits] == [work_repo[1]]

    def test_commit_fields(self, engine, handle, work_repo):
        commit = engine.read_commit(handle, work_repo[2])
        assert commit.message.startswith("Add guide")
        assert commit.author.name == "Test Author"
        assert commit.author.email == "test@example.com"


# -----------------------------------------------------------------------------
# Tree Tests
# -----------------------------------------------------------------------------

class TestReadTreeFiltered:
    """Tests for DulwichEngine.read_tree_filtered() and read_blob()."""

    def test_top_level_file(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[2]).tree_id
        blob_id = engine.read_tree_filtered(handle, tree_id, "README.md")
        assert engine.read_blob(handle, blob_id) == b"hello"

    def test_nested_file(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[2]).tree_id
        blob_id = engine.read_tree_filtered(handle, tree_id, "docs/guide.md")
        assert engine.read_blob(handle, blob_id) == b"guide"

    def test_directory_is_not_a_file(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[2]).tree_id
        assert engine.read_tree_filtered(handle, tree_id, "docs") is None

    def test_missing_path(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[2]).tree_id
        assert engine.read_tree_filtered(handle, tree_id, "nope.txt") is None

    def test_path_through_file(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[2]).tree_id
        assert engine.read_tree_filtered(handle, tree_id, "README.md/inner") is None

    def test_file_absent_in_older_commit(self, engine, handle, work_repo):
        tree_id = engine.read_commit(handle, work_repo[1]).tree_id
        assert engine.read_tree_filtered(handle, tree_id, "docs/guide.md") is None


# -----------------------------------------------------------------------------
# Refs Tests
# -----------------------------------------------------------------------------

class TestRefs:
    """Tests for DulwichEngine.list_refs() and head_ref()."""

    def test_list_refs_excludes_head(self, engine, handle, work_repo):
        refs = engine.list_refs(handle)
        assert "HEAD" not in refs
        assert refs["refs/heads/main"] == work_repo[2]

    def test_head_ref(self, engine, handle):
        assert engine.head_ref(handle) == "refs/heads/main"


# -----------------------------------------------------------------------------
# Status Tests
# -----------------------------------------------------------------------------

class TestComputeStatus:
    """Tests for DulwichEngine.compute_status()."""

    def test_clean_after_commit(self, engine, handle):
        status = engine.compute_status(handle)
        assert status.is_clean
        assert not status.has_uncommitted_changes

    def test_untracked_file(self, engine, work_repo):
        path = work_repo[0]
        (path / "notes.txt").write_text("scratch")
        with engine.open(path) as handle:
            status = engine.compute_status(handle)
        assert status.untracked == {"notes.txt"}
        assert not status.has_uncommitted_changes
        assert not status.is_clean

    def test_untracked_folder(self, engine, work_repo):
        path = work_repo[0]
        (path / "build").mkdir()
        (path / "build" / "out.txt").write_text("artifact")
        with engine.open(path) as handle:
            status = engine.compute_status(handle)
        assert "build/out.txt" in status.untracked
        assert status.untracked_folders == {"build"}

    def test_modified_file(self, engine, work_repo):
        path = work_repo[0]
        (path / "README.md").write_text("hello, changed")
        with engine.open(path) as handle:
            status = engine.compute_status(handle)
        assert status.modified == {"README.md"}
        assert status.uncommitted_changes == {"README.md"}

    def test_missing_file(self, engine, work_repo):
        path = work_repo[0]
        (path / "README.md").unlink()
        with engine.open(path) as handle:
            status = engine.compute_status(handle)
        assert status.missing == {"README.md"}
        assert status.modified == set()


class TestUntrackedFolders:
    """Tests for _untracked_folders()."""

    def test_top_most_untracked_directory(self):
        assert _untracked_folders({"a/b/c.txt"}, set()) == {"a"}

    def test_directory_with_tracked_content_not_reported(self):
        assert _untracked_folders({"src/new/x.py"}, {"src/main.py"}) == {"src/new"}

    def test_top_level_files_ignored(self):
        assert _untracked_folders({"x.txt"}, set()) == set()


# -----------------------------------------------------------------------------
# Clone Tests
# -----------------------------------------------------------------------------

class TestClone:
    """Tests for DulwichEngine.clone()."""

    def test_clone_local_bare_repository(self, engine, temp_repos_dir, temp_source_dir):
        source = init_repo(temp_source_dir / "upstream.git", bare=True)
        commit_id = commit_to_bare(source, {"README.md": b"hello"})

        target = temp_repos_dir / "upstream"
        engine.clone(str(source), target)

        assert probe_existence(target) is ExistenceState.PRESENT_VALID
        with engine.open(target) as handle:
            assert engine.resolve_ref(handle, "HEAD") == commit_id

    def test_clone_missing_source_raises(self, engine, temp_repos_dir, temp_source_dir):
        with pytest.raises(Exception):
            engine.clone(str(temp_source_dir / "nowhere.git"), temp_repos_dir / "nowhere")
