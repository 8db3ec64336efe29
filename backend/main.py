"""
Nebula Dock: session-based tool-calling orchestrator.
FastAPI backend around an OpenAI-compatible chat-completion endpoint.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config import Settings, get_settings
from core import AgentCore
from errors import DockError, InternalError, PayloadTooLargeError
from routes import register_routes

logger = logging.getLogger(__name__)

_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": message})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "connect-src 'self'; "
            "frame-ancestors 'none'"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than max_body_bytes with 413."""

    def __init__(self, app, max_body_bytes: int):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in _BODY_METHODS:
            declared = request.headers.get("content-length")
            if declared is not None:
                try:
                    too_large = int(declared) > self.max_body_bytes
                except ValueError:
                    return _error(400, "Invalid Content-Length header")
            else:
                too_large = len(await request.body()) > self.max_body_bytes
            if too_large:
                logger.warning("Rejected %s %s: body over %d bytes",
                               request.method, request.url.path, self.max_body_bytes)
                exc = PayloadTooLargeError(f"Request body exceeds {self.max_body_bytes} bytes")
                return _error(exc.status_code, exc.message)
        return await call_next(request)


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "Malformed JSON body"
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def register_exception_handlers(app: FastAPI):
    """Map every failure into the {"ok": false, "error": ...} envelope."""

    @app.exception_handler(DockError)
    async def dock_error_handler(request: Request, exc: DockError):
        if isinstance(exc, InternalError) or exc.status_code >= 500:
            logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.message)
            return _error(exc.status_code, "Server error")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _describe_validation_error(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = "Not found"
        elif exc.status_code == 405:
            message = "Method not allowed"
        else:
            message = str(exc.detail)
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Server error")


def create_app(settings: Optional[Settings] = None, core: Optional[AgentCore] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=getattr(logging, settings.server.log_level, logging.INFO),
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        agent_core = core or AgentCore(settings)
        app.state.agent_core = agent_core
        await agent_core.start()
        logger.info("Model endpoint: %s (configured=%s)",
                    settings.model.base_url, settings.model.configured)
        yield
        await agent_core.shutdown()

    app = FastAPI(
        title="Nebula Dock",
        description="Session-based tool-calling orchestrator API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.server.max_body_bytes)

    register_exception_handlers(app)
    register_routes(app)

    # Mounted last so API routes take precedence
    public_dir = Path(settings.server.public_dir)
    if public_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(public_dir), html=True), name="public")
        logger.info("Serving static assets from %s", public_dir)

    return app


def run():
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
    )


if __name__ == "__main__":
    run()
