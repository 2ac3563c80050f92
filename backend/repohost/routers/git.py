"""
Git HTTP smart protocol endpoints.

Implements the server side of git clone/fetch/push over HTTP. Pack
negotiation is delegated to dulwich through GitServiceRunner; this module
only handles HTTP concerns (auth, bodies, headers, status codes).
"""
import asyncio
import gzip
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import PlainTextResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from repohost.config import get_settings
from repohost.dependencies import get_access_policy, get_authenticator, get_git_service
from repohost.errors import ServiceNotEnabled
from repohost.services.access_policy import AccessDecision, AccessPolicy
from repohost.services.auth import BasicAuthenticator
from repohost.services.transport import SERVICE_HANDLERS, GitServiceRunner

logger = logging.getLogger(__name__)

basic_auth = HTTPBasic(auto_error=False)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


async def enforce_access_policy(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(basic_auth),
    policy: AccessPolicy = Depends(get_access_policy),
    authenticator: BasicAuthenticator = Depends(get_authenticator),
) -> str | None:
    """Reject unauthenticated pushes before any repository is touched."""
    decision = policy.classify(request.method, request.url.path, request.url.query)
    if decision is not AccessDecision.REQUIRE_AUTHENTICATION:
        return None

    username = authenticator.authenticate(
        credentials.username if credentials else None,
        credentials.password if credentials else None,
    )
    if username is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": authenticator.challenge},
        )
    return username


router = APIRouter(
    prefix=get_settings().git_prefix,
    tags=["git"],
    dependencies=[Depends(enforce_access_policy)],
)


async def get_request_body(request: Request) -> bytes:
    """Get request body, decompressing gzip if needed."""
    body = await request.body()
    content_encoding = request.headers.get("content-encoding", "").lower()

    if content_encoding == "gzip" or (len(body) > 2 and body[:2] == b"\x1f\x8b"):
        try:
            body = gzip.decompress(body)
            logger.debug("Decompressed gzip request body: %d bytes", len(body))
        except (OSError, EOFError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid gzip request body: {e}")

    return body


def repository_unavailable(error: ServiceNotEnabled) -> PlainTextResponse:
    return PlainTextResponse(error.message, status_code=404, headers=NO_CACHE_HEADERS)


@router.get("/{repo_name:path}/info/refs")
async def get_info_refs(
    repo_name: str,
    service: str = Query(..., description="git-upload-pack or git-receive-pack"),
    git: GitServiceRunner = Depends(get_git_service),
):
    """
    Refs discovery endpoint for git clone/fetch/push.

    GET {prefix}/{repo}/info/refs?service=git-upload-pack  (clone/fetch)
    GET {prefix}/{repo}/info/refs?service=git-receive-pack (push)
    """
    if service not in SERVICE_HANDLERS:
        raise HTTPException(status_code=400, detail="Invalid service")

    loop = asyncio.get_running_loop()
    try:
        content = await loop.run_in_executor(None, git.advertise_refs, repo_name, service)
    except ServiceNotEnabled as e:
        return repository_unavailable(e)

    return Response(
        content=content,
        media_type=f"application/x-{service}-advertisement",
        headers=NO_CACHE_HEADERS,
    )


async def _run_service(repo_name: str, service: str, request: Request, git: GitServiceRunner) -> Response:
    body = await get_request_body(request)
    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(None, git.run_service, repo_name, service, body)
    except ServiceNotEnabled as e:
        return repository_unavailable(e)

    return Response(
        content=result,
        media_type=f"application/x-{service}-result",
        headers=NO_CACHE_HEADERS,
    )


@router.post("/{repo_name:path}/git-upload-pack")
async def git_upload_pack(
    repo_name: str,
    request: Request,
    git: GitServiceRunner = Depends(get_git_service),
):
    """Handle git clone/fetch pack negotiation."""
    return await _run_service(repo_name, "git-upload-pack", request, git)


@router.post("/{repo_name:path}/git-receive-pack")
async def git_receive_pack(
    repo_name: str,
    request: Request,
    git: GitServiceRunner = Depends(get_git_service),
):
    """Handle git push pack reception."""
    return await _run_service(repo_name, "git-receive-pack", request, git)


@router.get("/{repo_name:path}/HEAD")
async def get_head(repo_name: str, git: GitServiceRunner = Depends(get_git_service)):
    """Get HEAD reference (required by some git clients)."""
    loop = asyncio.get_running_loop()
    try:
        content = await loop.run_in_executor(None, git.head, repo_name)
    except ServiceNotEnabled as e:
        return repository_unavailable(e)

    return Response(
        content=content,
        media_type="text/plain",
        headers={"Cache-Control": "no-cache"},
    )
