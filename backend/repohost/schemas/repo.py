from pydantic import BaseModel


class PersonRecord(BaseModel):
    name: str
    email: str
    timestamp: str  # yyyy-MM-dd HH:mm:ss +hhmm


class CommitRecord(BaseModel):
    hash: str
    short_message: str
    full_message: str
    author: PersonRecord
    committer: PersonRecord


class StatusReport(BaseModel):
    repository: str
    current_branch: str | None
    is_clean: bool
    has_uncommitted_changes: bool
    added: list[str] = []
    changed: list[str] = []
    modified: list[str] = []
    missing: list[str] = []
    removed: list[str] = []
    untracked: list[str] = []
    untracked_folders: list[str] = []
    conflicting: list[str] = []
    uncommitted_changes: list[str] = []
    conflicting_stage_state: dict[str, str] = {}


class RepositorySummary(BaseModel):
    """Response for GET /api/repos/info (clone on first use)."""
    name: str
    remote_url: str
    local_path: str
    branches: list[str]
    latest_commit_hash: str | None
    message: str = "Repository processed successfully"


class RepositoryCreated(BaseModel):
    name: str
    path: str
    git_directory: str
    bare: bool = False
    message: str = "Empty repository created successfully."


class RepositoryList(BaseModel):
    base_path: str
    count: int
    repositories: list[str]


class ErrorBody(BaseModel):
    detail: str
    cause: str | None = None
