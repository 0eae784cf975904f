from __future__ import annotations

import logging

from flask import Flask


def create_app(config_path: str | None = None) -> Flask:
    """Application factory used by tests and runtime."""
    from .api import register_api
    from .catalog import get_catalog
    from .config import engine_settings_from, load_config
    from .database import init_db
    from .quotation_ids import QuotationIdGenerator

    config = load_config(config_path)
    logging.basicConfig(level=str(config.get("LOG_LEVEL", "INFO")).upper())

    app = Flask(__name__, static_folder=None)
    app.config.update(config)

    init_db(app)
    settings = engine_settings_from(config)
    app.extensions["ledquote.settings"] = settings
    app.extensions["ledquote.catalog"] = get_catalog(settings.catalog_path)
    app.extensions["ledquote.generator"] = QuotationIdGenerator(
        app.extensions["ledquote.engine"], prefix=settings.quotation_id_prefix
    )
    register_api(app)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
