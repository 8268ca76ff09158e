"""
Development server runner.

Reads host, port and environment from the TaskPilot settings so the same
``.env`` drives both the API and the server process.

Usage: python run_server.py
"""

from __future__ import annotations

from uvicorn import Config, Server

from taskpilot.core.config import get_settings


def main() -> None:
    settings = get_settings()
    development = settings.app_env == "development"
    config = Config(
        app="taskpilot.main:app",
        host=settings.host,
        port=settings.port,
        reload=development,
        reload_dirs=["taskpilot"] if development else None,
        log_config=None,
    )
    Server(config=config).run()


if __name__ == "__main__":
    main()
