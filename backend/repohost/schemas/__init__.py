from repohost.schemas.repo import (
    CommitRecord,
    ErrorBody,
    PersonRecord,
    RepositoryCreated,
    RepositoryList,
    RepositorySummary,
    StatusReport,
)

__all__ = [
    "CommitRecord",
    "ErrorBody",
    "PersonRecord",
    "RepositoryCreated",
    "RepositoryList",
    "RepositorySummary",
    "StatusReport",
]
