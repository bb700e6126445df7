"""
doccatalog Database Base — SQLAlchemy declarative base, mixins, and engine registry.

Provides:
- Base: SQLAlchemy declarative base for catalog tables
- TimestampMixin: created_at, updated_at
- EngineRegistry: named engines with their session factories
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all catalog tables."""
    pass


class TimestampMixin:
    """Adds created_at and updated_at columns. updated_at may be NULL for imported rows."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True)


class EngineRegistry:
    """
    Registry of named SQLAlchemy engines.

    Usage:
        registry = EngineRegistry()
        registry.register("catalog", "postgresql://...")
        factory = registry.session_factory("catalog")
    """

    def __init__(self):
        self._engines: Dict[str, Engine] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

    def register(
        self,
        name: str,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        pool_pre_ping: bool = True,
        **kwargs: Any,
    ) -> Engine:
        """Register a new database engine. SQLite engines skip pool tuning."""
        if url.startswith("sqlite"):
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each checkout sees an empty database
                kwargs.setdefault("poolclass", StaticPool)
                kwargs.setdefault("connect_args", {"check_same_thread": False})
            engine = create_engine(url, **kwargs)
        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=pool_pre_ping,
                **kwargs,
            )
        self._engines[name] = engine
        self._session_factories[name] = sessionmaker(bind=engine, expire_on_commit=False)
        return engine

    def get(self, name: str) -> Engine:
        """Get a registered engine by name."""
        if name not in self._engines:
            raise KeyError(f"Engine '{name}' not registered. Available: {list(self._engines.keys())}")
        return self._engines[name]

    def session_factory(self, name: str) -> sessionmaker:
        """sessionmaker bound to a registered engine."""
        if name not in self._session_factories:
            raise KeyError(f"Engine '{name}' not registered")
        return self._session_factories[name]

    def dispose(self, name: Optional[str] = None) -> None:
        """Dispose one or all engines (close connection pools)."""
        if name:
            engine = self._engines.pop(name, None)
            self._session_factories.pop(name, None)
            if engine is not None:
                engine.dispose()
        else:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
            self._session_factories.clear()

    def health_check(self, name: str) -> bool:
        """Check if an engine can connect."""
        try:
            with self.get(name).connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (KeyError, SQLAlchemyError):
            return False


# Global engine registry singleton
engine_registry = EngineRegistry()
