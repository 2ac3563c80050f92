"""
Access policy for the Git smart-HTTP endpoints.

Clone and fetch are anonymous; anything that can push requires
authentication. Pure classification - no I/O, no server needed.
"""
from enum import Enum
from urllib.parse import parse_qs

UPLOAD_PACK = "git-upload-pack"
RECEIVE_PACK = "git-receive-pack"


class AccessDecision(str, Enum):
    PERMIT = "permit"
    REQUIRE_AUTHENTICATION = "require-authentication"


class AccessPolicy:
    """Classifies requests under the Git prefix as anonymous or authenticated."""

    def __init__(self, git_prefix: str = "/git"):
        self.git_prefix = "/" + git_prefix.strip("/")

    @property
    def csrf_exempt_prefixes(self) -> tuple[str, ...]:
        """Path prefixes the HTTP layer must not apply CSRF protection to.

        Git clients never carry CSRF tokens or browser origins.
        """
        return (self.git_prefix,)

    def covers(self, path: str) -> bool:
        return path == self.git_prefix or path.startswith(self.git_prefix + "/")

    def classify(self, method: str, path: str, query: str = "") -> AccessDecision | None:
        """Decide how a request must be authorized.

        Returns None for requests outside the Git prefix.
        """
        if not self.covers(path):
            return None

        method = method.upper()
        services = parse_qs(query or "").get("service", [])

        if RECEIVE_PACK in services:
            return AccessDecision.REQUIRE_AUTHENTICATION
        if method == "POST" and path.rstrip("/").endswith("/" + RECEIVE_PACK):
            return AccessDecision.REQUIRE_AUTHENTICATION
        return AccessDecision.PERMIT
