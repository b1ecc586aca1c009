from __future__ import annotations

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from casebuilder.config import settings
from casebuilder.db import describe_record, ping
from casebuilder.version import APP_VERSION


router = APIRouter()

_READY_CACHE_TTL_SECONDS = 30.0
_ready_cache: dict[str, object] = {
    "ts": 0.0,
    "ok": None,
    "payload": None,
}


def _cache_set(ok: bool, payload: dict[str, object]) -> None:
    _ready_cache["ts"] = time.time()
    _ready_cache["ok"] = ok
    _ready_cache["payload"] = payload


def _cache_get() -> tuple[bool, dict[str, object]] | None:
    if time.time() - float(_ready_cache.get("ts") or 0.0) > _READY_CACHE_TTL_SECONDS:
        return None
    payload = _ready_cache.get("payload")
    if isinstance(payload, dict):
        return bool(_ready_cache.get("ok")), payload
    return None


def reset_ready_cache() -> None:
    _ready_cache.update({"ts": 0.0, "ok": None, "payload": None})


@router.get("/")
def root() -> dict[str, str]:
    return {"service": "negotiation-casebuilder", "status": "running", "version": APP_VERSION}


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "environment": settings.app_env}


@router.get("/ready", response_model=None)
def ready() -> JSONResponse:
    cached = _cache_get()
    if cached is not None:
        ok, payload = cached
        return JSONResponse(status_code=200 if ok else 503, content=payload)

    store_ok = ping()
    checks: dict[str, object] = {
        "db": {"ok": store_ok, "backend": "sqlite"},
        "generation": {"backend": settings.generation_backend},
    }
    if store_ok:
        record = describe_record()
        checks["case"] = {"stored": record is not None, **(record or {})}
    payload: dict[str, object] = {
        "status": "ready" if store_ok else "not_ready",
        "environment": settings.app_env,
        "checks": checks,
    }
    _cache_set(store_ok, payload)
    return JSONResponse(status_code=200 if store_ok else 503, content=payload)
