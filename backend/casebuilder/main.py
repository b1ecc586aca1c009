from contextlib import asynccontextmanager
from functools import lru_cache
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from casebuilder.api.routers.case import build_case_router
from casebuilder.api.routers.system import router as system_router
from casebuilder.config import settings
from casebuilder.db import init_db
from casebuilder.generation import CaseGenerator, build_case_generator
from casebuilder.observability import (
    configure_logging,
    normalize_request_id,
    reset_request_id,
    sanitize_for_logging,
    set_request_id,
)
from casebuilder.version import APP_VERSION

logger = logging.getLogger("casebuilder.api")


def _request_fields(request: Request) -> dict[str, object]:
    return {"method": request.method, "path": request.url.path}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _completion_level(status_code: int) -> int:
    # 429 is a deferred generation call, not a fault.
    if status_code >= 500:
        return logging.WARNING
    return logging.INFO


@lru_cache(maxsize=1)
def _cached_case_generator() -> CaseGenerator:
    return build_case_generator(settings)


def get_case_generator() -> CaseGenerator:
    return _cached_case_generator()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level, max_string_length=settings.log_max_string_length)
    logger.info(
        "application_startup",
        extra={
            "event": "application_startup",
            "environment": settings.app_env,
            "generation_backend": settings.generation_backend,
        },
    )
    init_db()
    yield
    logger.info("application_shutdown", extra={"event": "application_shutdown"})


def create_app() -> FastAPI:
    cors_origins = settings.cors_origins_list
    if settings.cors_allow_credentials and any(origin == "*" for origin in cors_origins):
        raise RuntimeError("Invalid CORS_ORIGINS: wildcard '*' is not allowed when credentials are enabled.")

    app = FastAPI(title=settings.app_name, version=APP_VERSION, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", settings.request_id_header],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = normalize_request_id(request.headers.get(settings.request_id_header))
        request.state.request_id = request_id
        token = set_request_id(request_id)
        started = time.perf_counter()

        logger.info(
            "request_started",
            extra={
                "event": "request_started",
                **_request_fields(request),
                "query": sanitize_for_logging(dict(request.query_params)),
            },
        )

        try:
            response = await call_next(request)
            response.headers[settings.request_id_header] = request_id
            logger.log(
                _completion_level(response.status_code),
                "request_completed",
                extra={
                    "event": "request_completed",
                    **_request_fields(request),
                    "status_code": response.status_code,
                    "rate_limited": response.status_code == 429,
                    "duration_ms": _elapsed_ms(started),
                },
            )
            return response
        except Exception:
            logger.exception(
                "request_failed",
                extra={
                    "event": "request_failed",
                    **_request_fields(request),
                    "duration_ms": _elapsed_ms(started),
                },
            )
            raise
        finally:
            reset_request_id(token)

    app.include_router(system_router)
    # Resolved per request so tests can swap the generator on this module.
    app.include_router(build_case_router(get_case_generator=lambda: get_case_generator()))
    return app


app = create_app()
