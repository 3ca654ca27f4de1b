"""
Create the group automation tables directly from the ORM metadata.
For local development and throwaway databases; deployed databases are managed
by Alembic (run_migrations.py).
"""
import logging

from group_automation.core.config import configure_logging
from group_automation.db.base import Base
from group_automation.db.session import engine
from group_automation.models import AutomationRule, CollectedDatum

logger = logging.getLogger(__name__)


def create_tables() -> list[str]:
    tables = [AutomationRule.__table__, CollectedDatum.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)
    return [table.name for table in tables]


if __name__ == "__main__":
    configure_logging()
    for name in create_tables():
        logger.info(f"✅ Table ready: {name}")
