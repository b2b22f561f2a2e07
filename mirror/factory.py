"""
FastAPI application factory for the Everyday Mirror backend.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.errors import MirrorError
from .core.redis import close_redis
from .api.router import router, mirror_error_handler

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Everyday Mirror",
        description="AI stylist session backend",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting Everyday Mirror (env=%s)", settings.env)

        # Create database tables
        await init_db()

        # Remote config is read once; defaults if the record is unreachable
        from .services.remote_config import init_remote_config
        await init_remote_config()

        # Log feature flag state
        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: s3=%s redis=%s tts=%s stripe=%s",
            flags.use_s3, flags.use_redis, flags.use_tts, flags.use_stripe,
        )

        logger.info("Everyday Mirror is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        await close_db()
        await close_redis()
        logger.info("Everyday Mirror shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.add_exception_handler(MirrorError, mirror_error_handler)
    app.include_router(router)

    return app
