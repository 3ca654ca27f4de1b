"""
Run schema migrations before the message workers start.
Deploy start command runs: python run_migrations.py && <worker>
Uses alembic.ini and DATABASE_URL; fails loudly so the DB is never left out of sync.
"""
import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from group_automation.core.config import DATABASE_URL, configure_logging

logger = logging.getLogger(__name__)


def run() -> bool:
    project_root = Path(__file__).resolve().parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return False
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", DATABASE_URL)
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
        return True
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        return False


if __name__ == "__main__":
    configure_logging()
    success = run()
    sys.exit(0 if success else 1)
