from functools import lru_cache
from pathlib import Path
import os

from pydantic import BaseModel, field_validator


# Default storage directory for served repositories
DEFAULT_REPOS_ROOT = Path(__file__).parent.parent / "git_repos"


def parse_users(raw: str | None) -> dict[str, str]:
    """Parse ``user:password,user2:password2`` into a credential mapping."""
    users: dict[str, str] = {}
    if not raw:
        return users
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        username, sep, password = entry.partition(":")
        if not sep or not username:
            raise ValueError(f"Invalid user entry (expected user:password): {entry!r}")
        users[username] = password
    return users


class Settings(BaseModel):
    app_name: str = "repohost"
    repos_root: Path = DEFAULT_REPOS_ROOT
    git_prefix: str = "/git"
    users: dict[str, str] = {"git": "git"}
    auth_realm: str = "repohost"
    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    @field_validator("git_prefix")
    @classmethod
    def validate_git_prefix(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("/"):
            value = "/" + value
        value = value.rstrip("/")
        if not value:
            raise ValueError("git_prefix must not be the site root")
        return value

    @field_validator("repos_root")
    @classmethod
    def absolute_repos_root(cls, value: Path) -> Path:
        return Path(os.path.abspath(value))


@lru_cache
def get_settings() -> Settings:
    values: dict = {}
    if os.getenv("REPOHOST_REPOS_ROOT"):
        values["repos_root"] = os.environ["REPOHOST_REPOS_ROOT"]
    if os.getenv("REPOHOST_GIT_PREFIX"):
        values["git_prefix"] = os.environ["REPOHOST_GIT_PREFIX"]
    if os.getenv("REPOHOST_USERS") is not None:
        values["users"] = parse_users(os.environ["REPOHOST_USERS"])
    if os.getenv("REPOHOST_AUTH_REALM"):
        values["auth_realm"] = os.environ["REPOHOST_AUTH_REALM"]
    if os.getenv("REPOHOST_CORS_ORIGINS"):
        values["cors_origins"] = [
            origin.strip()
            for origin in os.environ["REPOHOST_CORS_ORIGINS"].split(",")
            if origin.strip()
        ]
    if os.getenv("REPOHOST_LOG_LEVEL"):
        values["log_level"] = os.environ["REPOHOST_LOG_LEVEL"].upper()
    return Settings(**values)
