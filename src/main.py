"""
Meridian - Main application entry point.

Serves the unified position engine (margined FX, spot stocks and spot
crypto) over HTTP, keeping balances in sync with the ledger of record.

Run with ``-check`` to verify the ledger database and exit.
"""

import sys

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from meridian.config.logging import get_logger
from meridian.config.settings import get_settings
from meridian.ledger.database import check_database_health
from meridian.utils.config import initialize_application


def run_storage_check() -> int:
    health = check_database_health()
    print(f"Ledger database: {health['status']}")
    if health.get("missing_tables"):
        print(f"Missing tables: {', '.join(health['missing_tables'])}")
    if health.get("error"):
        print(f"Error: {health['error']}")
    return 0 if health["status"] == "healthy" else 1


def main() -> None:
    initialize_application()
    logger = get_logger(__name__)

    if "-check" in sys.argv:
        sys.exit(run_storage_check())

    settings = get_settings()
    logger.info(
        "Starting API server",
        host=settings.endpoint_host,
        port=settings.endpoint_port,
        environment=settings.environment,
        auth_enabled=bool(settings.endpoint_auth_token),
    )

    try:
        uvicorn.run(
            "meridian.webapi.app:app",
            host=settings.endpoint_host,
            port=settings.endpoint_port,
            reload=settings.api_reload,
            log_level=settings.api_log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down")


if __name__ == "__main__":
    main()
