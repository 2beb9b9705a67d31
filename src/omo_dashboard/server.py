"""FastAPI application and command line entry point for the session dashboard."""

import argparse
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import DEFAULT_HOST, DEFAULT_PORT
from .ingest import select_storage_backend
from .logging_config import LOG_LEVELS, get_logger, setup_logging
from .routes import dashboard_router, logs_router

logger = get_logger(__name__, 'api')


def create_app(project_root: str | None = None, backend=None) -> FastAPI:
    """Build the dashboard app for a project.

    Args:
        project_root: Project whose sessions are shown (default: current directory)
        backend: Storage backend (default: selected once from the XDG data directory)
    """
    app = FastAPI(title="OpenCode Session Dashboard")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.state.project_root = os.path.abspath(project_root or os.getcwd())
    app.state.backend = backend if backend is not None else select_storage_backend()

    app.include_router(dashboard_router)
    app.include_router(logs_router)
    return app


def main():
    parser = argparse.ArgumentParser(description="OpenCode Session Dashboard")
    parser.add_argument('--project', default=os.getcwd(), help='Project root to monitor')
    parser.add_argument('--host', default=DEFAULT_HOST, help='Host to bind to')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT, help='Port to bind to')
    parser.add_argument('--log-level', type=str.upper, choices=LOG_LEVELS, help='Log level (default: OMO_LOG_LEVEL or INFO)')
    args = parser.parse_args()

    setup_logging(args.log_level)
    app = create_app(args.project)
    logger.info("Serving %s on %s:%d (%s storage)", app.state.project_root, args.host, args.port,
                app.state.backend.kind)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == '__main__':
    main()
