"""
Git smart-HTTP transport - repository resolution and service dispatch.

Pack negotiation itself is dulwich's: ``TransportResolver`` is the dulwich
``Backend`` its upload-pack/receive-pack handlers call to open a
repository, and ``GitServiceRunner`` drives those handlers in stateless-RPC
mode for one HTTP request at a time.
"""
import logging
from io import BytesIO

from dulwich.errors import GitProtocolError
from dulwich.protocol import ReceivableProtocol
from dulwich.server import Backend, ReceivePackHandler, UploadPackHandler

from repohost.errors import InvalidIdentifier, ServiceNotEnabled, UpstreamOperationFailed
from repohost.services.repo_store import ExistenceState, RepositoryStore, probe_existence

logger = logging.getLogger(__name__)

UPLOAD_PACK = "git-upload-pack"
RECEIVE_PACK = "git-receive-pack"

SERVICE_HANDLERS = {
    UPLOAD_PACK: UploadPackHandler,
    RECEIVE_PACK: ReceivePackHandler,
}


class TransportResolver(Backend):
    """Opens existing repositories for the Git protocol. Never creates any."""

    def __init__(self, store: RepositoryStore):
        self.store = store

    def open_repository(self, path):
        name = path.decode("utf-8") if isinstance(path, bytes) else path
        try:
            repo_path = self.store.paths.locate(name)
        except InvalidIdentifier as e:
            logger.warning("Attempt to access repository with invalid name: %r", name)
            raise ServiceNotEnabled(f"Invalid repository name: {name}", cause=e.message) from e

        logger.debug("Attempting to open repository: %s -> %s", name, repo_path)
        state = probe_existence(repo_path)
        if state is ExistenceState.ABSENT:
            logger.warning("Repository not found at path: %s", repo_path)
            raise ServiceNotEnabled(f"Repository not found: {name}")
        if state is ExistenceState.PRESENT_INVALID:
            logger.warning("Path is not a valid Git repository (no .git dir or not bare): %s", repo_path)
            raise ServiceNotEnabled(f"Not a valid Git repository: {name}")

        try:
            handle = self.store.engine.open(repo_path)
        except Exception as e:
            logger.error("Failed to open repository %s: %s", name, e)
            raise ServiceNotEnabled(f"Cannot open repository: {name}", cause=str(e)) from e
        logger.info("Successfully opened repository: %s", handle.path)
        return handle.repo


def _repair_head(repo) -> None:
    """Point HEAD at an existing branch if it names one that does not exist."""
    head = repo.refs.read_ref(b"HEAD")
    if head and not head.startswith(b"ref: "):
        return
    target = head[5:].strip() if head else None
    branches = sorted(ref for ref in repo.get_refs() if ref.startswith(b"refs/heads/"))
    if not branches or (target and target in branches):
        return
    for preferred in (b"refs/heads/main", b"refs/heads/master"):
        if preferred in branches:
            new_target = preferred
            break
    else:
        new_target = branches[0]
    repo.refs.set_symbolic_ref(b"HEAD", new_target)
    logger.info("Updated HEAD to %s", new_target.decode("utf-8"))


class GitServiceRunner:
    """Runs one stateless smart-HTTP exchange against a resolved repository."""

    def __init__(self, resolver: TransportResolver):
        self.resolver = resolver

    @property
    def store(self) -> RepositoryStore:
        return self.resolver.store

    def _handler(self, name: str, service: str, proto, advertise_refs: bool = False):
        handler_cls = SERVICE_HANDLERS.get(service)
        if handler_cls is None:
            raise ServiceNotEnabled(f"Unsupported service: {service}")
        return handler_cls(
            self.resolver, [name], proto, stateless_rpc=True, advertise_refs=advertise_refs
        )

    def advertise_refs(self, name: str, service: str) -> bytes:
        """Body for GET info/refs?service=..."""
        output = BytesIO()
        proto = ReceivableProtocol(BytesIO().read, output.write)
        handler = self._handler(name, service, proto, advertise_refs=True)
        try:
            handler.proto.write_pkt_line(b"# service=" + service.encode("ascii") + b"\n")
            handler.proto.write_pkt_line(None)
            handler.handle()
        except GitProtocolError as e:
            raise UpstreamOperationFailed(f"Ref advertisement failed for {name}", cause=str(e)) from e
        finally:
            handler.repo.close()
        return output.getvalue()

    def run_service(self, name: str, service: str, body: bytes) -> bytes:
        """Body for POST git-upload-pack / git-receive-pack."""
        if service not in SERVICE_HANDLERS:
            raise ServiceNotEnabled(f"Unsupported service: {service}")
        logger.info("%s request for %s: %d bytes", service, name, len(body))
        if service == RECEIVE_PACK:
            # Pushes mutate the repository; serialize them per repository
            try:
                lock = self.store.lock(name)
            except InvalidIdentifier as e:
                raise ServiceNotEnabled(f"Invalid repository name: {name}", cause=e.message) from e
            with lock:
                return self._exchange(name, service, body, after=_repair_head)
        return self._exchange(name, service, body)

    def _exchange(self, name: str, service: str, body: bytes, after=None) -> bytes:
        output = BytesIO()
        proto = ReceivableProtocol(BytesIO(body).read, output.write)
        handler = self._handler(name, service, proto)
        try:
            handler.handle()
            if after is not None:
                after(handler.repo)
        except GitProtocolError as e:
            logger.error("%s failed for %s: %s", service, name, e)
            raise UpstreamOperationFailed(f"{service} failed for {name}", cause=str(e)) from e
        finally:
            handler.repo.close()
        return output.getvalue()

    def head(self, name: str) -> bytes:
        """Contents of HEAD, for clients that fetch it directly."""
        repo = self.resolver.open_repository(name)
        try:
            head = repo.refs.read_ref(b"HEAD")
        finally:
            repo.close()
        return (head or b"ref: refs/heads/main").strip() + b"\n"
