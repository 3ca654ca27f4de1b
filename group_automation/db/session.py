from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from group_automation.core.config import DATABASE_URL, DB_MAX_OVERFLOW, DB_POOL_SIZE

# One engine per worker process. Each inbound group message holds a session only
# for rule selection, the action's writes and a possible aggregate query, so a
# small pool per worker is enough; bursts (a busy bolão group) use the overflow.
engine = create_engine(
    DATABASE_URL,
    poolclass=QueuePool,
    pool_size=DB_POOL_SIZE,
    max_overflow=DB_MAX_OVERFLOW,
    pool_timeout=30,  # a message waiting this long for a connection fails instead of piling up
    pool_pre_ping=True,  # workers can sit idle between messages; drop connections the server closed
    pool_recycle=1800,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Session per message (or per request, when a web layer calls rule management)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
