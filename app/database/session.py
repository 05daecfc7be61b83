"""
Database sessions for import requests and import jobs.

Import services own their transactions: every service method commits or rolls back
explicitly. The helpers here only open the session, discard leftover pending work
on error and close it.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, sessionmaker

from app.database.engine import engine

logger = logging.getLogger("app.database")

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def _import_session(owner: str) -> Iterator[Session]:
    session = SessionLocal()
    logger.debug(f"Import session opened for {owner}")
    try:
        yield session
    except Exception as e:
        logger.warning(f"Discarding uncommitted import work for {owner}: {e}")
        session.rollback()
        raise
    finally:
        session.close()
        logger.debug(f"Import session closed for {owner}")


def get_session() -> Iterator[Session]:
    """FastAPI dependency: one session per import API request."""
    with _import_session("request") as session:
        yield session


def get_db_session():
    """
    Session for one import job in a worker process.

    Nothing is committed on exit; the batch lifecycle and the writer commit their
    own work.
    """
    return _import_session("job")
