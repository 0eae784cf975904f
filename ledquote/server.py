from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import Response

from .app.catalog import get_catalog
from .app.config import get_engine_settings
from .routers import router as api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_engine_settings()
    catalog = get_catalog(settings.catalog_path)
    logger.info("Engine API ready with %d catalog products", len(catalog))
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="LED Quote Engine", version="1.0.0", lifespan=lifespan)
    app.include_router(api_router)

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon() -> Response:
        """Return an empty response so browsers stop logging 404 errors."""

        return Response(status_code=204)

    return app


app = create_app()
