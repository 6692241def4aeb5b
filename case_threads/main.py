"""Case Threads: Main FastAPI Application.

Threaded, @mention-driven comments on service cases, with notification
fan-out, read receipts and a per-user ticket worklist.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .api import api_router
from .core import (
    AttachmentTooLargeError,
    CommentThreadError,
    EmptyContentError,
    ForbiddenError,
    NotFoundError,
    NotRootCommentError,
    StoreUnavailableError,
    UnsupportedAttachmentError,
    async_session_factory,
    close_db,
    get_settings,
    init_db,
)
from .schemas import ErrorResponse
from .services import (
    AttachmentStore,
    DispatchScheduler,
    HttpAttachmentStore,
    NotificationDispatcher,
    ReadReceiptTracker,
    RealtimeHub,
    hub as default_hub,
)

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Domain error -> (HTTP status, error code)
ERROR_STATUS: list[tuple[type[CommentThreadError], int, str]] = [
    (EmptyContentError, status.HTTP_422_UNPROCESSABLE_ENTITY, "empty_content"),
    (AttachmentTooLargeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "attachment_too_large"),
    (UnsupportedAttachmentError, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, "unsupported_attachment"),
    (NotRootCommentError, status.HTTP_409_CONFLICT, "not_root_comment"),
    (ForbiddenError, status.HTTP_403_FORBIDDEN, "forbidden"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
]


def configure_state(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    hub: RealtimeHub,
    attachment_store: AttachmentStore | None = None,
) -> None:
    """Attach long-lived collaborators to ``app.state``."""
    dispatcher = NotificationDispatcher(session_factory, hub)
    app.state.session_factory = session_factory
    app.state.hub = hub
    app.state.dispatch_scheduler = DispatchScheduler(dispatcher)
    app.state.attachment_store = attachment_store or HttpAttachmentStore(settings)
    app.state.receipt_tracker = ReadReceiptTracker(session_factory, hub=hub)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")
    if not hasattr(app.state, "hub"):
        configure_state(app, async_session_factory, default_hub)

    # Tables are managed by migrations in production
    if settings.environment != "production":
        await init_db()

    yield

    await app.state.dispatch_scheduler.drain()
    await app.state.hub.close()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Case Threads API

    Comment threads on service cases.

    ### Key Features

    - **Threads**: root comments with nested replies; status lives on the root.
    - **Mentions**: `@[Name](user:<id>)`, `@tekniker`, `@koordinator`, `@admin`, `@alla`.
    - **Notifications**: one per recipient and comment, pushed live over WebSockets.
    - **Worklist**: tickets that need my answer vs. tickets waiting on others.

    ### Acting user

    Requests carry the authenticated user id in `X-User-ID`, set by the gateway.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)


@app.exception_handler(CommentThreadError)
async def comment_thread_error_handler(request: Request, exc: CommentThreadError):
    """Map domain errors to HTTP responses."""
    for error_cls, status_code, code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            break
    else:
        status_code, code = status.HTTP_400_BAD_REQUEST, "comment_thread_error"

    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=code, message=str(exc), details=[]).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    error_detail = str(exc)
    if settings.debug or settings.environment != "production":
        error_detail = f"{str(exc)}\n{traceback.format_exc()}"

    logger.error(f"Unhandled exception: {error_detail}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=f"An unexpected error occurred: {str(exc)[:200]}",
            details=[],
        ).model_dump(),
    )


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "case_threads.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
