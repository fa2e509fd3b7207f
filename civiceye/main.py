# File: civiceye/main.py
# Project: civiceye-backend

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

from civiceye.core.config import cors_origins_list, settings
from civiceye.core.errors import CivicEyeError, StoreUnavailableError
from civiceye.core.logging import configure_logging
from civiceye.core.ratelimit import limiter
from civiceye.db.session import Store, build_store
from civiceye.routers import issues, issues_stats
from civiceye.schemas.common import fail
from civiceye.services.storage import MediaStorage

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"


def _request_field(errors: list) -> Optional[str]:
    if not errors:
        return None
    loc = [str(p) for p in errors[0].get("loc", ()) if p not in ("body", "query", "path", "form")]
    return ".".join(loc) or None


async def civiceye_error_handler(request: Request, exc: CivicEyeError):
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if isinstance(exc, StoreUnavailableError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=fail(exc.code, exc.message, getattr(exc, "field", None)),
        headers=headers,
    )


async def store_outage_handler(request: Request, exc: Exception):
    logger.warning("store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return await civiceye_error_handler(request, StoreUnavailableError("Backing store unavailable, please retry"))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content=fail("validation_error", message, _request_field(errors)))


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = {401: "unauthorized", 403: "forbidden", 404: "not_found", 429: "rate_limited"}.get(
        exc.status_code, "http_error"
    )
    return JSONResponse(status_code=exc.status_code, content=fail(code, str(exc.detail)),
                        headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception):
    correlation_id = uuid.uuid4().hex
    logger.exception("unhandled error on %s %s [%s]", request.method, request.url.path, correlation_id)
    return JSONResponse(
        status_code=500,
        content=fail("internal_error", "Something went wrong", correlation_id=correlation_id),
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    app.state.store.dispose()


def create_app(store: Optional[Store] = None, media: Optional[MediaStorage] = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(title="CivicEye Issue API", lifespan=_lifespan)
    app.state.store = store or build_store()
    app.state.media = media or MediaStorage()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CivicEyeError, civiceye_error_handler)
    app.add_exception_handler(OperationalError, store_outage_handler)
    app.add_exception_handler(PoolTimeoutError, store_outage_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(issues_stats.router)
    app.include_router(issues.router)

    if not app.state.media.remote:
        upload_dir = Path(app.state.media.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        app.mount("/uploads/issues", StaticFiles(directory=str(upload_dir)), name="uploads")

    return app


app = create_app()
