"""
Main API router. Mounts all sub-routers.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    CheckoutError,
    GenerationError,
    InvalidTransition,
    MirrorError,
    UnknownStyle,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "everyday-mirror"}


# ── Public config ────────────────────────────────────────────────────

@router.get("/v1/config")
async def public_config():
    """Remote config as the client sees it (camelCase)."""
    from ..services.remote_config import get_remote_config

    return get_remote_config().model_dump(mode="json", by_alias=True)


@router.get("/v1/styles")
async def styles():
    from ..orchestrator.state import STYLE_MOODS

    return {mode.value: moods for mode, moods in STYLE_MOODS.items()}


# ── Error mapping ────────────────────────────────────────────────────

_STATUS_BY_ERROR = [
    (InvalidTransition, 409),   # includes SessionBusy
    (UnknownStyle, 422),
    (CheckoutError, 400),
    (GenerationError, 502),
]


async def mirror_error_handler(request: Request, exc: MirrorError) -> JSONResponse:
    status_code = 400
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# ── V1 routes ────────────────────────────────────────────────────────

from .billing import billing_router
from .mirror import mirror_router
from .tracking import tracking_router

router.include_router(mirror_router, prefix="/v1")
router.include_router(billing_router, prefix="/v1")
router.include_router(tracking_router, prefix="/v1")
