"""Application startup helpers."""

from pathlib import Path

from ..config.logging import get_logger, setup_logging
from ..config.settings import get_settings
from ..ledger.database import create_tables


def prepare_storage() -> None:
    """Create the data directory and any missing ledger tables."""
    settings = get_settings()
    logger = get_logger(__name__)

    if not settings.database_url:
        Path(settings.data_directory).mkdir(parents=True, exist_ok=True)

    create_tables()
    logger.info("Ledger storage ready", data_dir=settings.data_directory)


def initialize_application() -> None:
    """Configure logging and storage before the server starts."""
    settings = get_settings()
    setup_logging(settings)
    prepare_storage()

    get_logger(__name__).info(
        "Application initialized",
        environment=settings.environment,
        debug=settings.debug,
        ledger_sync_enabled=settings.ledger_sync_enabled,
        default_leverage=settings.default_leverage,
    )
