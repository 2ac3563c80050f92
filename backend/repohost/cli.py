"""
CLI for the repohost server.

Usage:
    repohost --host 0.0.0.0 --port 8000 --repos-root /srv/git

Or with environment variables:
    export REPOHOST_REPOS_ROOT=/srv/git
    export REPOHOST_USERS="alice:secret,bob:hunter2"
    repohost
"""

import argparse
import logging
import os
import sys


def setup_logging(verbose: bool = False, level: str | None = None):
    """Configure logging."""
    if verbose:
        resolved = logging.DEBUG
    else:
        resolved = logging.getLevelName((level or "INFO").upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="repohost - serve Git repositories over smart HTTP with an inspection API"
    )

    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    parser.add_argument(
        "--repos-root",
        help="Directory holding the served repositories (default: REPOHOST_REPOS_ROOT env)",
    )
    parser.add_argument(
        "--git-prefix",
        help="URL prefix of the Git endpoints (default: REPOHOST_GIT_PREFIX env or /git)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    # Settings are read from the environment on first use
    if args.repos_root:
        os.environ["REPOHOST_REPOS_ROOT"] = args.repos_root
    if args.git_prefix:
        os.environ["REPOHOST_GIT_PREFIX"] = args.git_prefix

    from repohost.config import get_settings

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(args.verbose, settings.log_level)
    logger = logging.getLogger(__name__)
    logger.info("Serving repositories from %s", settings.repos_root)
    logger.info("Git endpoints under %s", settings.git_prefix)

    import uvicorn

    uvicorn.run("repohost.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
