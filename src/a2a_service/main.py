"""
A2A Task Service application.

JSON-RPC 2.0 over HTTP: ``POST <base path>`` serves ``tasks/send``,
``tasks/sendSubscribe``, ``tasks/get`` and ``tasks/cancel``. ``GET /status``
describes the running service and ``GET /storage`` dumps the task store for
administrators.
"""

from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from .a2a import __version__
from .a2a.models import current_timestamp
from .cancellation import CancellationRegistry
from .echo_agent import echo_agent
from .logging_config import configure_logging
from .models import TaskHandler
from .server import A2AServer
from .sessions import BearerTokenSessionResolver, SessionResolver
from .settings import Settings, get_settings
from .storage import TaskStore, create_task_store
from .streaming_manager import StreamingManager
from .task_manager import A2ATaskManager

logger = logging.getLogger(__name__)


def require_admin(settings: Settings, authorization: Optional[str]) -> None:
    """Allow the request only with ``Authorization: Bearer <admin token>``."""
    if not settings.admin_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Storage dump is disabled")
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing admin token")
    provided = authorization.split(" ", 1)[1]
    if not secrets.compare_digest(provided, settings.admin_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin token")


def create_app(
    settings: Optional[Settings] = None,
    task_handler: Optional[TaskHandler] = None,
    task_store: Optional[TaskStore] = None,
    session_resolver: Optional[SessionResolver] = None,
) -> FastAPI:
    """
    Create the A2A Task Service FastAPI application.

    Args:
        settings: Service settings; read from the environment when omitted.
        task_handler: Handler run for every task; defaults to ``echo_agent``.
        task_store: Task persistence; built from ``settings`` when omitted.
        session_resolver: Client authentication; a bearer-token resolver is
            installed when ``settings.auth_tokens`` is non-empty.

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    store = task_store if task_store is not None else create_task_store(settings)
    if session_resolver is None and settings.auth_tokens:
        session_resolver = BearerTokenSessionResolver(settings.auth_tokens)

    streaming_manager = StreamingManager(max_streams=settings.max_streams)
    task_manager = A2ATaskManager(
        task_handler or echo_agent,
        store,
        cancellations=CancellationRegistry(),
        streaming_manager=streaming_manager,
    )
    a2a_server = A2AServer(task_manager, streaming_manager, session_resolver)
    started = current_timestamp()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        configure_logging()
        logger.info(
            "A2A task service started",
            extra={"url": settings.public_url, "task_store": settings.task_store},
        )

        yield

        await streaming_manager.close()
        await store.close()
        logger.info("A2A task service stopped")

    app = FastAPI(
        title=settings.service_name,
        description="A2A task execution service using JSON-RPC 2.0 over HTTP",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.task_store = store
    app.state.streaming_manager = streaming_manager
    app.state.task_manager = task_manager
    app.state.a2a_server = a2a_server
    app.state.session_resolver = session_resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post(settings.base_path)
    async def handle_jsonrpc(request: Request) -> Response:
        """Main JSON-RPC 2.0 endpoint."""
        return await request.app.state.a2a_server.handle_request(request)

    @app.get("/status")
    async def service_status(request: Request) -> Dict[str, Any]:
        return {
            "name": settings.service_name,
            "version": __version__,
            "started": started,
            "url": settings.public_url,
            "streams": await request.app.state.streaming_manager.get_stream_stats(),
        }

    @app.get("/storage")
    async def storage_dump(
        request: Request,
        authorization: Optional[str] = Header(default=None),
    ) -> Dict[str, Any]:
        require_admin(settings, authorization)
        dump = await request.app.state.task_store.dump()
        resolver = request.app.state.session_resolver
        if isinstance(resolver, BearerTokenSessionResolver):
            dump["clientSessions"] = resolver.dump()
        return dump

    logger.info("A2A task service application created", extra={"base_path": settings.base_path})
    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the A2A task service with uvicorn."""
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level="info",
    )


def main() -> None:
    run_server()


if __name__ == "__main__":
    main()
