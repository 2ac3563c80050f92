import asyncio
import functools
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, Response

from repohost.dependencies import get_inspection_service, get_repo_store
from repohost.errors import RepositoryNotFound
from repohost.schemas import (
    CommitRecord,
    RepositoryCreated,
    RepositoryList,
    RepositorySummary,
    StatusReport,
)
from repohost.services.inspection import InspectionService
from repohost.services.paths import repo_name_from_url
from repohost.services.repo_store import RepositoryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/repos", tags=["repos"])


async def run_blocking(func, *args, **kwargs):
    """Run a filesystem/Git call on the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


@router.get("", response_model=RepositoryList)
async def list_repos(store: RepositoryStore = Depends(get_repo_store)):
    names = await run_blocking(store.list_repositories)
    return RepositoryList(base_path=str(store.root), count=len(names), repositories=names)


@router.get("/info", response_model=RepositorySummary)
async def repo_info(
    remote_url: str = Query(..., description="URL to clone from on first use"),
    name: str | None = Query(None, description="Local name (defaults to the URL's last segment)"),
    store: RepositoryStore = Depends(get_repo_store),
    inspection: InspectionService = Depends(get_inspection_service),
):
    """
    Report branches and the latest commit of a repository, cloning
    ``remote_url`` into the local store the first time it is requested.
    """
    identifier = name or repo_name_from_url(remote_url)

    def describe() -> RepositorySummary:
        with store.open_or_clone(identifier, remote_url) as handle:
            return inspection.summarize(handle, store.paths.normalize(identifier), remote_url)

    return await run_blocking(describe)


@router.post("", response_model=RepositoryCreated, status_code=201)
async def create_repo(
    name: str = Query(..., description="Repository name (single path segment)"),
    bare: bool = Query(False, description="Create a bare repository (push target)"),
    store: RepositoryStore = Depends(get_repo_store),
):
    """
    Create an empty repository.

    Returns 409 if the name is already taken and 400 for an invalid name.
    """
    path = await run_blocking(store.create_empty, name, bare=bare)
    git_directory = path if bare else path / ".git"
    return RepositoryCreated(
        name=path.name,
        path=str(path),
        git_directory=str(git_directory),
        bare=bare,
    )


@router.delete("/{repo_name:path}", status_code=204)
async def delete_repo(repo_name: str, store: RepositoryStore = Depends(get_repo_store)):
    deleted = await run_blocking(store.delete_repository, repo_name)
    if not deleted:
        raise RepositoryNotFound(f"Repository '{repo_name}' not found.")
    return Response(status_code=204)


@router.get("/{repo_name:path}/status", response_model=StatusReport)
async def repo_status(
    repo_name: str,
    inspection: InspectionService = Depends(get_inspection_service),
):
    logger.info("Request to get status for repository: %s", repo_name)
    return await run_blocking(inspection.status, repo_name)


@router.get("/{repo_name:path}/log", response_model=list[CommitRecord])
async def repo_log(
    repo_name: str,
    branch: str = "HEAD",
    max_count: int = 20,
    skip: int = Query(0, ge=0),
    inspection: InspectionService = Depends(get_inspection_service),
):
    """Commit history reachable from ``branch``; max_count <= 0 returns everything."""
    logger.info(
        "Request to get commit log for repository: %s, branch: %s, max_count: %d, skip: %d",
        repo_name, branch, max_count, skip,
    )
    return await run_blocking(inspection.log, repo_name, branch, max_count=max_count, skip=skip)


@router.get("/{repo_name:path}/file", response_class=PlainTextResponse)
async def repo_file(
    repo_name: str,
    path: str = Query(..., description="File path inside the repository"),
    ref: str = "HEAD",
    inspection: InspectionService = Depends(get_inspection_service),
):
    logger.info("Request to get file content for repository: %s, path: %s, ref: %s", repo_name, path, ref)
    content = await run_blocking(inspection.file_content, repo_name, path, ref)
    return PlainTextResponse(content)
