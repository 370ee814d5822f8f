from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from .settings import settings

SUPPORTED_BACKENDS = ("sqlite", "postgresql")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Build an engine for the ledger.

    SQLite gets BEGIN IMMEDIATE transactions so a whole settlement holds the
    write lock and concurrent terminals queue on the busy timeout instead of
    failing halfway through.

    Only SQLite and PostgreSQL are accepted: the stock ledger relies on their
    INSERT ... ON CONFLICT and UPDATE ... RETURNING.
    """
    backend = make_url(url).get_backend_name()
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(
            f"Unsupported database backend '{backend}', expected one of {', '.join(SUPPORTED_BACKENDS)}"
        )

    if backend == "sqlite":
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": settings.db_busy_timeout},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=echo
    )


# Create engine
engine = create_db_engine(settings.database_url, echo=settings.debug)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def init_db(bind: Engine = None):
    """Create every table registered on Base"""
    from stockledger.shared.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


# Database dependency
def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
