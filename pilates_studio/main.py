# pilates_studio/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Response

from .core.config import is_running_tests, settings
from .database import engine, init_db
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes import admin, lesson_templates, lessons, members, reservations

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting studio booking API (timezone=%s)", settings.studio_timezone)
    if engine.dialect.name == "sqlite" and not is_running_tests():
        # Local sqlite runs have no migration step
        init_db(engine)
    yield
    logger.info("Studio booking API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pilates Studio Booking API",
        version="1.0.0",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(lessons.router, prefix="/lessons")
    api_v1.include_router(reservations.router, prefix="/reservations")
    api_v1.include_router(members.router, prefix="/members")
    api_v1.include_router(admin.router, prefix="/admin")
    api_v1.include_router(lesson_templates.router, prefix="/admin/lesson-templates")
    app.include_router(api_v1)

    @app.get("/health", include_in_schema=False)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type(),
            headers={"Cache-Control": "no-store"},
        )

    return app


app = create_app()
