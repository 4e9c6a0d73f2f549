# database.py
"""
SQLAlchemy database connection and session management.

This module provides:
- Engine construction for SQLite (default) or Azure SQL / MS SQL Server
- Session factory used by the invoice store
- Connection utilities

Usage:
     from database import build_engine, build_session_factory, session_scope

     engine = build_engine(settings.database_url)
     factory = build_session_factory(engine)
     with session_scope(factory) as db:
          db.get(Invoice, "A1B2C3D4E5")
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
     """
     Create the SQLAlchemy engine for ``database_url``.

     SQLite connections are shared across worker threads, so the same-thread
     check is disabled; in-memory databases use a single static connection so
     every session sees the same data.
     """
     if database_url.startswith("sqlite"):
          options = {"connect_args": {"check_same_thread": False}, "echo": echo}
          if database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url:
               options["poolclass"] = StaticPool
          return create_engine(database_url, **options)

     return create_engine(
          database_url,
          poolclass=QueuePool,
          pool_size=5,
          max_overflow=10,
          pool_timeout=30,
          pool_recycle=1800,  # Recycle connections after 30 minutes
          echo=echo,
     )


def build_session_factory(engine: Engine) -> sessionmaker:
     return sessionmaker(
          bind=engine,
          autocommit=False,
          autoflush=False,
          expire_on_commit=False,
     )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
     """
     Context manager for database sessions.

     Commits when the block completes, rolls back and re-raises on error.

     Yields:
          Session: SQLAlchemy database session
     """
     session = factory()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db(engine: Engine) -> None:
     """
     Initialize database tables.

     Creates all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     from models import Base
     Base.metadata.create_all(bind=engine)


def check_connection(engine: Engine) -> bool:
     """
     Test database connectivity.

     Returns:
          bool: True if connection successful, False otherwise
     """
     try:
          with engine.connect() as conn:
               conn.execute(text("SELECT 1"))
          return True
     except Exception:
          logger.exception("Database connection check failed")
          return False
