"""
Error taxonomy for repository resolution, lifecycle and inspection.

Every error carries an HTTP status so the API layer can render it without
knowing which service raised it.
"""


class RepositoryHostError(Exception):
    """Base class for all repohost errors."""

    status_code = 500

    def __init__(self, message: str, cause: str | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"detail": self.message, "cause": self.cause}


class InvalidIdentifier(RepositoryHostError):
    """Malformed or unsafe repository name."""

    status_code = 400


class RepositoryNotFound(RepositoryHostError):
    """Repository is absent, or the directory is not a Git repository."""

    status_code = 404


class AlreadyExists(RepositoryHostError):
    status_code = 409


class RefNotFound(RepositoryHostError):
    status_code = 404


class PathNotFound(RepositoryHostError):
    status_code = 404


class UnsupportedForBareRepository(RepositoryHostError):
    status_code = 409


class UpstreamOperationFailed(RepositoryHostError):
    """Clone, init or another Git engine operation failed."""

    status_code = 500


class ServiceNotEnabled(RepositoryHostError):
    """Smart-HTTP equivalent of not-found: the repository cannot be served."""

    status_code = 404


class ConfigurationError(RepositoryHostError):
    """Startup configuration is unusable (e.g. repos root not writable)."""
