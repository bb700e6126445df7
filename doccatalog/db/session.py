"""
doccatalog Database Session Management.

Single entry point for catalog DB initialisation plus a context manager for
DB access. Uses the global EngineRegistry.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session, sessionmaker

from doccatalog.db.base import Base, engine_registry
from doccatalog.engine.config import DatabaseConfig

CATALOG_ENGINE = "catalog"


def init_catalog_db(
    db_config: DatabaseConfig,
    create_tables: bool = False,
    engine_name: str = CATALOG_ENGINE,
) -> sessionmaker:
    """
    Register the catalog engine and optionally create its tables.

    Args:
        db_config:     database section of doccatalog.yaml.
        create_tables: run Base.metadata.create_all() (``doccatalog init``
                       and tests only).
        engine_name:   registry name for the engine.

    Returns:
        A sessionmaker bound to the engine.
    """
    engine = engine_registry.register(
        engine_name,
        db_config.url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_recycle=db_config.pool_recycle,
        pool_pre_ping=db_config.pool_pre_ping,
    )
    if create_tables:
        Base.metadata.create_all(engine)
    return engine_registry.session_factory(engine_name)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
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


def close_catalog_db(engine_name: str = CATALOG_ENGINE) -> None:
    """Dispose the catalog engine. Used during shutdown."""
    engine_registry.dispose(engine_name)
