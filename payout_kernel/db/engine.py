"""
Module: payout_kernel.db.engine
Responsibility: Build the engine for a database URL and hold the
    process-wide session factory the batch engine draws sessions from.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from models/, services/ or outer packages (except
    import_all_models(), which exists so metadata is complete).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED; concurrent batch runs are
      kept apart by conditional single-row updates, not by isolation.
    - SQLite (tests, local runs) must support SAVEPOINT: pysqlite's
      implicit transaction handling is disabled and BEGIN is emitted
      explicitly.  WAL mode lets readers proceed during a run.
    - Sessions never expire attributes on commit, so snapshots and results
      stay readable after the per-payment commit.

Failure modes:
    - RuntimeError from get_session_factory()/create_tables() before
      init_engine_from_url().
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from payout_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _install_sqlite_pragmas(engine: Engine, busy_timeout_ms: int) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # SQLAlchemy owns transaction boundaries; see "begin" below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in (
            "foreign_keys=ON",
            f"busy_timeout={int(busy_timeout_ms)}",
            "journal_mode=WAL",
        ):
            cursor.execute(f"PRAGMA {pragma}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_recycle: int = 1800,
    sqlite_busy_timeout_ms: int = 5000,
) -> Engine:
    """Create (but do not register) an engine for ``database_url``."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_pragmas(engine, sqlite_busy_timeout_ms)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(database_url: str, echo: bool = False, **engine_kwargs) -> Engine:
    """
    Register the module-level engine and session factory.

    A second call disposes the previous engine and replaces it.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(database_url, echo=echo, **engine_kwargs)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name, "echo": echo})
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The batch processor takes a factory rather than a session: it opens
    short-lived sessions for the run lock and commits per payment.
    """
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def import_all_models() -> None:
    """Import every ORM module so Base.metadata knows all tables."""
    import payout_batch.models  # noqa: F401
    import payout_kernel.models  # noqa: F401


def create_tables(engine: Engine | None = None) -> None:
    """Create all tables on ``engine`` (default: the registered engine)."""
    from payout_kernel.db.base import Base

    if engine is None:
        if _engine is None:
            raise RuntimeError(_NOT_INITIALIZED)
        engine = _engine
    import_all_models()
    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def reset_engine() -> None:
    """Dispose the registered engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
