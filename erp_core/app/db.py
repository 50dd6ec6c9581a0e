import logging
import os
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    # Prefer explicit DATABASE_URL env var. If not provided, use a local
    # SQLite file in a `data/` folder adjacent to the package directory.
    env_db = os.getenv("DATABASE_URL")
    if env_db:
        return env_db

    data_dir = Path(__file__).resolve().parents[1] / "data"
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        logger.warning("Could not create %s, falling back to in-memory SQLite", data_dir)
        return "sqlite:///:memory:"
    return f"sqlite:///{(data_dir / 'pipe_erp.db').as_posix()}"


DATABASE_URL = get_database_url()

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def create_db_and_tables():
    from . import models  # noqa: F401  register mappers

    logger.info("Creating tables on %s", DATABASE_URL)
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator:
    """Database session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
