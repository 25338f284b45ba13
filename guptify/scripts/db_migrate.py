import logging
import os
import sys

from alembic import command
from alembic.config import Config
from alembic.util import CommandError
from sqlalchemy import create_engine, inspect

from guptify.core.database import DATABASE_URL

logger = logging.getLogger("guptify.db_migrate")

CORE_TABLES = ("users", "folders", "files", "file_shares")


def sync_database_url(url: str) -> str:
    """Alembic runs on a blocking engine, so strip the async drivers."""
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg2")


def _alembic_config() -> Config:
    ini_path = os.getenv("ALEMBIC_CONFIG", "alembic.ini")
    if not os.path.exists(ini_path):
        raise FileNotFoundError(f"Alembic config not found: {ini_path}")
    return Config(ini_path)


def main():
    engine = create_engine(sync_database_url(DATABASE_URL))
    try:
        insp = inspect(engine)
        has_alembic = insp.has_table("alembic_version")
        present = [t for t in CORE_TABLES if insp.has_table(t)]
    finally:
        engine.dispose()

    cfg = _alembic_config()
    if present and not has_alembic:
        # Tables created by the app's create_all on startup predate any revision.
        logger.info("Found tables %s without alembic_version, stamping head", ", ".join(present))
        command.stamp(cfg, "head")
    else:
        logger.info("has_alembic=%s existing_tables=%s", has_alembic, present)

    command.upgrade(cfg, "head")
    logger.info("Database schema is at head")


def run():
    logging.basicConfig(level=logging.INFO, format="[db-migrate] %(levelname)s %(message)s")
    try:
        main()
    except CommandError as e:
        logger.error("Alembic command failed: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    run()
