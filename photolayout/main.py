import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from photolayout.api.v1.routes import router as api_v1_router
from photolayout.config import LayoutSettings
from photolayout.services.engine import LayoutEngine

logger = logging.getLogger(__name__)

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(dotenv_path=env_path, override=False)


def create_app(settings: LayoutSettings | None = None, engine: LayoutEngine | None = None) -> FastAPI:
    """
    Application factory for the Smart Layout API.

    The layout engine (and with it the buffer pool) lives on `app.state`, so
    every app instance, including each test client, gets its own.
    """
    settings = settings or (engine.settings if engine is not None else LayoutSettings.from_env())
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = FastAPI(
        title="Smart Layout API",
        version="0.1.0",
        description="Face-aware multi-photo layouts for photo frames and screensavers.",
    )
    app.state.layout_engine = engine or LayoutEngine(settings)
    logger.info(
        "Layout engine ready: face detection %s, border %dpx, pool %d per size",
        settings.face_detection,
        settings.border_width,
        settings.pool_bucket_size,
    )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    # Public, versioned API routes.
    app.include_router(api_v1_router)

    return app


app = create_app()
