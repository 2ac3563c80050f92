from contextlib import asynccontextmanager
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from repohost.config import get_settings
from repohost.dependencies import get_access_policy, get_repo_store
from repohost.errors import RepositoryHostError
from repohost.routers import git, repos

settings = get_settings()

UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_repo_store().ensure_root()
    yield


app = FastAPI(
    title=settings.app_name,
    description="Serve, clone and inspect Git repositories over HTTP",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def check_origin(request: Request, call_next):
    """Reject cross-site state-changing requests outside the Git prefix.

    Git clients send no Origin header; browsers do, and only same-host or
    configured CORS origins may POST/DELETE to the management API.
    """
    if request.method in UNSAFE_METHODS:
        path = request.url.path
        exempt = any(
            path == prefix or path.startswith(prefix + "/")
            for prefix in get_access_policy().csrf_exempt_prefixes
        )
        origin = request.headers.get("origin")
        if not exempt and origin:
            same_host = urlsplit(origin).netloc == request.headers.get("host")
            if not same_host and origin not in settings.cors_origins:
                return JSONResponse(
                    status_code=403,
                    content={"detail": "Cross-origin request rejected", "cause": origin},
                )
    return await call_next(request)


@app.exception_handler(RepositoryHostError)
async def repository_host_error_handler(request: Request, exc: RepositoryHostError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(git.router)
app.include_router(repos.router)


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}


@app.get("/")
async def root():
    return {
        "message": f"Welcome to {settings.app_name}",
        "docs": "/docs",
        "git": settings.git_prefix,
    }
