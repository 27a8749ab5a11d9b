"""
Module: inventory_kernel.db.engine
Responsibility: SQLAlchemy engine construction, transactional scope and
    schema creation.  Engines are built explicitly and handed to services;
    there is no module-level engine.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/ or outer layers (create_tables imports models).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) wherever stronger isolation is needed.
    - SQLite (tests, local runs) opens every transaction with BEGIN IMMEDIATE,
      so write transactions serialize at the database level.
    - Connection pooling via QueuePool with pre-ping on PostgreSQL.

Failure modes:
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
    - SQLite "database is locked" once pool_timeout elapses under contention.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from inventory_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create an engine for ``database_url``.

    PostgreSQL URLs get a QueuePool at READ COMMITTED.  SQLite URLs get the
    BEGIN IMMEDIATE listeners; an in-memory database shares one connection
    across threads (StaticPool) so every session sees the same schema.
    """
    url = make_url(database_url)

    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    kwargs: dict = {
        "echo": echo,
        "connect_args": {"check_same_thread": False, "timeout": pool_timeout},
    }
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Commit on normal exit; roll back and re-raise on any exception.
    The session is closed either way.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()

def create_tables(engine: Engine) -> None:
    """Create all inventory tables; existing tables are left untouched."""
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401  registers all tables

    Base.metadata.create_all(engine)

def drop_tables(engine: Engine) -> None:
    from inventory_kernel.db.base import Base
    import inventory_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine)
