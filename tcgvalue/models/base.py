"""
SQLAlchemy 2.0 async DeclarativeBase for TCG Value.

All models inherit from this Base. Portable column types are defined here so
the same models create PostgreSQL tables in production and SQLite tables in
tests.
"""

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase

# UUID on PostgreSQL, plain text elsewhere. Values are always str in Python.
UUIDText = String(36).with_variant(UUID(as_uuid=False), "postgresql")

# JSONB on PostgreSQL, JSON elsewhere.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY.
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all TCG Value database models."""
    pass
