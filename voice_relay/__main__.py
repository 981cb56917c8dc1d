"""
Entry point for running the Voice Relay webhook server.

Usage:
    python -m voice_relay

Starts the FastAPI webhook server on 0.0.0.0:$PORT (default 7860).
Missing BOT_TOKEN or WEBHOOK_URL is fatal.
"""
import sys

import uvicorn

from logging_setup import get_logger, setup_logging, Component

from .config import ConfigError, RelayConfig, load_env_files
from .runtime import build_runtime
from .webhook_server import create_app


def main() -> None:
    load_env_files()

    try:
        config = RelayConfig.from_env()
    except ConfigError as e:
        setup_logging(level="INFO", use_json=True)
        get_logger(Component.WEBHOOK_SERVER).critical("FATAL: invalid configuration", error=str(e))
        sys.exit(1)

    setup_logging(level=config.log_level, use_json=config.log_json)

    app = create_app(build_runtime(config))
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
