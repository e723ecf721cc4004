from __future__ import annotations

import os

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


def _resolve_env() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip()


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


def _check_store(request: Request) -> tuple[bool, str | None]:
    services = getattr(request.app.state, "services", None)
    if services is None:
        return False, "services not initialised"
    try:
        return bool(services.store.ping()), None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


@router.get("/healthz")
def healthz(request: Request):
    store_ok, store_error = _check_store(request)
    services = getattr(request.app.state, "services", None)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "store_ok": store_ok,
        "store_error": store_error,
        "gateway_mode": services.gateway_mode if services is not None else None,
    }


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": _resolve_env(),
        "git_sha": _resolve_git_sha(),
    }
