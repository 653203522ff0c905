import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app import models  # noqa: F401  registers every table on Base.metadata
from app.api.routes import courses, enrollments, schedule_items, teaching_plans, teaching_sessions
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import setup_logging
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.core.rate_limit import limiter
from app.db.database import Base, engine

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    # Local SQLite databases are created on the fly; other backends are migrated out of band
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.app_name} started | environment={settings.environment}")
    yield


def create_app() -> FastAPI:
    application = FastAPI(title=settings.app_name, lifespan=lifespan)

    application.state.limiter = limiter
    register_exception_handlers(application)

    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    for module in (courses, enrollments, schedule_items, teaching_plans, teaching_sessions):
        application.include_router(module.router, prefix="/api")

    @application.get("/health")
    def health():
        return {"status": "ok"}

    return application


app = create_app()
