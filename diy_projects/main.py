"""Application wiring for the DIY projects API.

Configuration, logging, the database, both routers, error rendering and the
middleware stack are assembled here. ``uvicorn diy_projects.main:app`` serves it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from . import __version__
from .core.config import settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .db.session import SessionLocal, init_db
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware
from .routers import api_materials as api_materials_router
from .routers import api_projects as api_projects_router

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if settings.SEED_SAMPLE_DATA:
        from .db.seed import seed_sample_data

        db = SessionLocal()
        try:
            seed_sample_data(db)
        finally:
            db.close()
    logger.info("app.started", extra={"extra_data": {"env": settings.APP_ENV, "version": __version__}})
    yield


app = FastAPI(title=settings.APP_NAME, version=__version__, lifespan=lifespan)

# ---------- Error rendering ----------
register_exception_handlers(app)

# ---------- Middleware ----------
# Starlette runs the last one added first, so request ids wrap everything else.
app.add_middleware(SecurityHeadersMiddleware, hsts=settings.APP_ENV == "prod")
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
app.add_middleware(RequestIdMiddleware)

# ---------- Routers ----------
app.include_router(api_materials_router.router)
app.include_router(api_projects_router.router)

# ---------- Metrics ----------
Instrumentator().instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    uvicorn.run("diy_projects.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
