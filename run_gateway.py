#!/usr/bin/env python3
"""
Entry point for serving the moderation gateway over HTTP.

Usage:
    python run_gateway.py

Environment:
    - TRUTHARROW_JUDGE__API_KEY (optional; without it every verdict approves)
    - TRUTHARROW_GATEWAY__HOST / TRUTHARROW_GATEWAY__PORT

Settings are read via AppSettings (``.env`` is loaded by default).
"""

import uvicorn

from trutharrow.config import AppSettings
from trutharrow.logging.events import level_from_name, setup_logging
from trutharrow.moderation.gateway import ModerationGateway
from trutharrow.services.http_gateway import create_app


def main() -> None:
    settings = AppSettings()
    setup_logging(level=level_from_name(settings.logging.level), use_json=settings.logging.use_json)
    gateway = ModerationGateway.from_settings(settings.judge)
    app = create_app(gateway, path=settings.gateway.path)

    uvicorn.run(app, host=settings.gateway.host, port=settings.gateway.port, log_config=None)


if __name__ == "__main__":
    main()
