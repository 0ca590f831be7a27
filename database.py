from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

# Ledger steps commit one by one; concurrent writers wait on the lock.
SQLITE_BUSY_TIMEOUT_MS = 5000


def build_engine(database_url: Optional[str] = None, **engine_kwargs) -> Engine:
    url = database_url or get_settings().database_url
    connect_args = dict(engine_kwargs.pop("connect_args", {}))
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)

    eng = create_engine(url, connect_args=connect_args, **engine_kwargs)
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
    cursor.close()


def make_session_factory(bind: Engine) -> sessionmaker:
    # Services keep using rows after the commits of earlier steps.
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = build_engine()
SessionLocal = make_session_factory(engine)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
