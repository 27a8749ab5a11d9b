"""
Module: inventory_kernel.db.base
Responsibility: Declarative base classes and portable column types for all
    SQLAlchemy ORM models.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; MUST NOT import from models/, services/ or outer layers.

Invariants enforced:
    - Monotonic integer primary keys: IdentityBase ids increase with insertion
      order, which is what FIFO reservation orders by.
    - JSON columns are JSONB on PostgreSQL and plain JSON elsewhere.
    - Tag sets are TEXT[] on PostgreSQL and a JSON array elsewhere.
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only auto-increments an INTEGER PRIMARY KEY column.
IdentityInteger = BigInteger().with_variant(Integer(), "sqlite")

JSONDocument = JSON().with_variant(JSONB(), "postgresql")

TagArray = JSON().with_variant(ARRAY(String(100)), "postgresql")


class Base(DeclarativeBase):
    """
    Declarative base for all inventory models.

    Guarantees:
        - datetime maps to DateTime(timezone=True).
        - dict maps to JSONB (PostgreSQL) / JSON.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        dict: JSONDocument,
    }


class IdentityBase(Base):
    """Abstract base with a database-generated, monotonic integer id."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        IdentityInteger,
        primary_key=True,
        autoincrement=True,
    )
