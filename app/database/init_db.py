"""
Database initialization script.
"""
import logging

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlmodel import SQLModel

from app.database.engine import engine as default_engine
from app.database.session import SessionLocal
from app.services.reference_resolver_service import ReferenceResolver

logger = logging.getLogger("app.database")


def create_tables(engine: Engine = default_engine) -> None:
    """
    Create all import tables.

    Args:
        engine: Engine to create tables on
    """
    # Register table models on the metadata
    import app.models.case  # noqa: F401
    import app.models.import_models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created")


def seed_placeholders(db: Session) -> None:
    """
    Ensure the Unknown Court and UNKNOWN case type placeholders exist.
    """
    resolver = ReferenceResolver(db)
    court_id = resolver.resolve_unknown_court()
    case_type_id = resolver.resolve_unknown_case_type()
    logger.info(f"Placeholders ready: court={court_id} case_type={case_type_id}")


def init_database() -> None:
    """
    Initialize database with tables and placeholder rows.
    """
    logger.info("Initializing database...")
    create_tables()

    db = SessionLocal()
    try:
        seed_placeholders(db)
        logger.info("Database initialization completed")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
