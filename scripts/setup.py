#!/usr/bin/env python3
"""Setup script for the Umrah booking core: run migrations, then load sample data."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from umrah_core.core.observability import setup_structured_logging  # noqa: E402
from umrah_core.seed import seed  # noqa: E402

logger = logging.getLogger(__name__)


def setup_database() -> None:
    """Bring the database schema to the latest revision."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


def main() -> None:
    """Main setup function."""
    setup_structured_logging()
    logger.info("Starting booking core setup...")

    # Migrations run their own event loop, so they go before the seed loop
    setup_database()
    asyncio.run(seed())

    logger.info("Setup completed successfully!")
    logger.info("Start the API server with: cd server && uvicorn umrah_core.main:app --reload")


if __name__ == "__main__":
    main()
