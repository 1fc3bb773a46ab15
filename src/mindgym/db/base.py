"""Declarative base and dialect-portable column helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

# JSONB on PostgreSQL, plain JSON elsewhere.
JSONPayload = JSON().with_variant(postgresql.JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def dialect_name(db: AsyncSession) -> str:
    """Name of the dialect the session is bound to ("postgresql", "sqlite", ...)."""
    bind = db.bind
    if bind is None:
        msg = "Session is not bound to an engine"
        raise RuntimeError(msg)
    return bind.dialect.name


def upsert(db: AsyncSession, model: Any) -> Any:
    """Build an INSERT .. ON CONFLICT capable statement for the session's dialect."""
    if dialect_name(db) == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
