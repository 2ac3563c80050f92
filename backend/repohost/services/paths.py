"""
Repository identifier validation and on-disk path resolution.

Identifier checks are string manipulation only, so a rejected identifier
never causes a filesystem call. confine() is the one exception: it follows
symlinks on disk and runs only after the string checks have passed.
"""
import logging
import os
import re
from pathlib import Path
from urllib.parse import unquote

from repohost.errors import InvalidIdentifier

logger = logging.getLogger(__name__)

GIT_SUFFIX = ".git"

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def _check_form(name: str) -> None:
    if not name or not name.strip():
        raise InvalidIdentifier("Repository name must not be empty")
    if name.startswith(("/", "\\")):
        raise InvalidIdentifier(f"Repository name must be relative: {name!r}")
    if "\\" in name or "\x00" in name:
        raise InvalidIdentifier(f"Repository name contains an illegal character: {name!r}")
    if _DRIVE_PREFIX.match(name):
        raise InvalidIdentifier(f"Repository name must not carry a drive prefix: {name!r}")
    for segment in name.split("/"):
        if segment == "..":
            raise InvalidIdentifier(f"Repository name must not contain '..': {name!r}")
        if segment in ("", "."):
            raise InvalidIdentifier(f"Repository name has an empty path segment: {name!r}")


def repo_name_from_url(remote_url: str) -> str:
    """Last path segment of a clone URL, without ``.git``."""
    name = remote_url.rstrip("/").rsplit("/", 1)[-1]
    # scp-like URLs: git@host:project.git
    name = name.rsplit(":", 1)[-1]
    if name.endswith(GIT_SUFFIX):
        name = name[: -len(GIT_SUFFIX)]
    return name


class PathResolver:
    """Maps client-supplied repository identifiers onto paths under a root."""

    def __init__(self, root: Path | str):
        self.root = os.path.normpath(os.path.abspath(str(root)))

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    def normalize(self, identifier: str) -> str:
        """Strip one trailing ``.git`` and validate what remains.

        Percent-decoded forms are validated too, so ``%2e%2e`` or ``%2f``
        cannot smuggle a separator past a later decoding step.
        """
        if identifier is None:
            raise InvalidIdentifier("Repository name is required")
        name = identifier[: -len(GIT_SUFFIX)] if identifier.endswith(GIT_SUFFIX) else identifier
        _check_form(name)
        decoded = unquote(name)
        if decoded != name:
            _check_form(decoded)
        return name

    def resolve(self, identifier: str) -> Path:
        """Return the absolute path for ``identifier``, strictly inside the root."""
        name = self.normalize(identifier)
        candidate = os.path.normpath(os.path.join(self.root, *name.split("/")))
        if candidate == self.root or os.path.commonpath([self.root, candidate]) != self.root:
            logger.warning("Rejected repository name escaping the root: %r", identifier)
            raise InvalidIdentifier(f"Repository name resolves outside the repositories root: {identifier!r}")
        return Path(candidate)

    def confine(self, path: Path | str) -> Path:
        """Check that ``path`` stays strictly inside the root once symlinks are followed.

        A cloned working tree may carry symlinks, so a name that passes
        resolve() can still reach outside the root on disk.
        """
        real_root = os.path.realpath(self.root)
        real = os.path.realpath(str(path))
        if real == real_root or os.path.commonpath([real_root, real]) != real_root:
            logger.warning("Rejected repository path leaving the root via symlink: %s -> %s", path, real)
            raise InvalidIdentifier(f"Repository path leaves the repositories root: {path}")
        return Path(path)

    def locate(self, identifier: str) -> Path:
        """resolve() followed by confine()."""
        return self.confine(self.resolve(identifier))

    def resolve_single_segment(self, name: str) -> Path:
        """Like resolve(), but the name must be one path segment."""
        if name is not None and "/" in name:
            raise InvalidIdentifier(
                f"Repository name must not contain path separators: {name!r}"
            )
        return self.resolve(name)
