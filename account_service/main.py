import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from account_service.api.v1 import users
from account_service.config import Settings, settings as default_settings
from account_service.core.errors import ApiError
from account_service.core.security import TokenCodec
from account_service.db.session import Database
from account_service.services.session_tokens import SessionTokenManager
from account_service.services.storage import ObjectStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def _error_body(status_code: int, message: str, errors: list[str] | None = None) -> dict:
    return {"statusCode": status_code, "data": None, "message": message, "success": False, "errors": errors or []}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.app.state.settings.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def build_token_manager(settings: Settings) -> SessionTokenManager:
    return SessionTokenManager(
        access_codec=TokenCodec(
            settings.access_token_secret, settings.access_token_expire_seconds, settings.jwt_algorithm
        ),
        refresh_codec=TokenCodec(
            settings.refresh_token_secret, settings.refresh_token_expire_seconds, settings.jwt_algorithm
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = [f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in exc.errors()]
        return JSONResponse(status_code=400, content=_error_body(400, "Invalid request", errors))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(500, "Something went wrong"))


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app; collaborators are constructed once here and shared through app.state."""
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.validate_token_config()
        await app.state.database.init_db()
        logger.info("Database initialized")
        yield
        await app.state.database.dispose()
        logger.info("Database connections closed")

    app = FastAPI(
        title="Account Service API",
        description="User accounts: registration, login, JWT sessions, profile media",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = Database(settings.database_url, echo=settings.debug)
    app.state.object_store = ObjectStore(settings)
    app.state.token_manager = build_token_manager(settings)

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(users.router, prefix="/api/v1")
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    @limiter.exempt
    def health(request: Request):
        return {"status": "ok"}

    return app


app = create_app()
