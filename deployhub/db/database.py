from contextlib import contextmanager
from typing import Iterator
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from deployhub.config import settings

logger = logging.getLogger(__name__)

_TRANSACTION_DEPTH_KEY = "deployhub_transaction_depth"


def build_engine(url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


# Create SQLAlchemy engine
engine = build_engine(str(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create a database session dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a unit of work that commits on success and rolls back on error.

    Nested ``transaction`` blocks on the same session join the outermost
    one, so a service method may call other transactional service methods
    and the whole request still commits or rolls back together.
    """
    depth = db.info.get(_TRANSACTION_DEPTH_KEY, 0)
    db.info[_TRANSACTION_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
        else:
            db.flush()
    except Exception:
        if depth == 0:
            logger.debug("Rolling back transaction")
            db.rollback()
        raise
    finally:
        db.info[_TRANSACTION_DEPTH_KEY] = depth
