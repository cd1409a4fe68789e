"""Entry point for the registry tools proxy server."""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from registry_tools import __version__
from registry_tools.api import create_app
from registry_tools.context import AppContext
from registry_tools.logging_config import configure_logging
from registry_tools.settings import ProxySettings, load_settings

logger = logging.getLogger(__name__)


def build_app(settings: Optional[ProxySettings] = None) -> FastAPI:
    """Create the configured application; used by ``uvicorn app:build_app --factory``."""

    settings = settings or load_settings()
    configure_logging(settings.log_level, settings.log_file)
    return create_app(AppContext(settings))


def main() -> int:
    settings = load_settings()
    app = build_app(settings)
    logger.info(
        "Registry tools proxy %s listening on http://%s:%s (registry sheet %r)",
        __version__,
        settings.host,
        settings.port,
        settings.registry_sheet,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
