# backend/database.py
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _normalize_url(url: str) -> str:
    # Heroku/Azure style URLs, SQLAlchemy needs postgresql://
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _serialize_sqlite_writers(engine) -> None:
    """
    SQLite has no row locks and ignores SELECT ... FOR UPDATE.

    Every transaction is opened with BEGIN IMMEDIATE instead, so the write
    lock is taken before the first read and two ledger transactions can
    never work from the same stock value.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str):
    url = _normalize_url(url)

    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    else:
        connect_args = {}

    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _serialize_sqlite_writers(engine)
    return engine


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    # Register every table on Base.metadata before creating them
    import models.company  # noqa: F401
    import models.users  # noqa: F401
    import models.product  # noqa: F401
    import models.partner  # noqa: F401
    import models.stock  # noqa: F401
    import models.log  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def ledger_transaction(db: Session):
    """Commit the block as one unit, roll everything back on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
