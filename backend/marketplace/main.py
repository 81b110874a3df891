import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import IntegrityError

from marketplace.api.v1.api import api_router
from marketplace.core.config import settings
from marketplace.core.logging import configure_logging
from marketplace.core.rate_limit import limiter
from marketplace.db.query import InvalidQuery, StoreUnavailable
from marketplace.db.session import AsyncSessionLocal, run_migrations
from marketplace.services import app_settings as app_settings_service
from marketplace.services import resources
from marketplace.services import users as users_service

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url=f"{settings.API_V1_STR}/docs",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    redoc_url=None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)


def _error(status_code: int, exc: Exception, default_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": getattr(exc, "code", default_code)},
    )


@app.exception_handler(InvalidQuery)
async def invalid_query_handler(request: Request, exc: InvalidQuery) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, exc, "invalid_query")


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc, "store_unavailable")


@app.exception_handler(resources.ResourceNotFound)
async def not_found_handler(request: Request, exc: resources.ResourceNotFound) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, exc, "not_found")


@app.exception_handler(resources.AccessDenied)
async def access_denied_handler(request: Request, exc: resources.AccessDenied) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, exc, "forbidden")


@app.exception_handler(app_settings_service.SettingExists)
@app.exception_handler(users_service.EmailAlreadyRegistered)
async def conflict_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, exc, "conflict")


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "The request conflicts with existing data", "code": "conflict"},
    )


@app.exception_handler(resources.TransitionError)
@app.exception_handler(resources.EmptySearchKeyword)
@app.exception_handler(resources.InvalidToggleField)
@app.exception_handler(app_settings_service.SettingValidationError)
@app.exception_handler(app_settings_service.SettingLocked)
async def business_rule_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, exc, "bad_request")


@app.on_event("startup")
async def on_startup() -> None:
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        await run_migrations()
    async with AsyncSessionLocal() as session:
        await app_settings_service.initialize_defaults(session, app_settings_service.settings_cache)
        await users_service.ensure_superuser(session)
