"""
HTTP Basic authentication against a fixed user store.
"""
import logging
import secrets
from typing import Optional

logger = logging.getLogger(__name__)


class BasicAuthenticator:
    """Checks username/password pairs against an in-memory credential map."""

    def __init__(self, users: dict[str, str], realm: str = "repohost"):
        self._users = dict(users)
        self.realm = realm

    @property
    def challenge(self) -> str:
        return f'Basic realm="{self.realm}"'

    def authenticate(self, username: Optional[str], password: Optional[str]) -> Optional[str]:
        """Return the username when the credentials match, else None."""
        if username is None or password is None:
            return None
        expected = self._users.get(username)
        # Compare even for unknown users so timing does not reveal them
        candidate = expected if expected is not None else secrets.token_hex(16)
        matches = secrets.compare_digest(password.encode("utf-8"), candidate.encode("utf-8"))
        if expected is None or not matches:
            logger.warning("Rejected credentials for user %r", username)
            return None
        return username
