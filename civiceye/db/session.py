# File: civiceye/db/session.py
import functools
import logging
from typing import Callable, Iterator, Optional, TypeVar

from fastapi import Depends, Request
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import DBAPIError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from civiceye.core.config import settings
from civiceye.core.errors import StoreUnavailableError
from civiceye.core.locks import KeyedLocks

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


class Store:
    """Process-lifetime handle on the backing store.

    Built once at startup and passed explicitly to request handlers; holds the
    engine, the session factory and the per-issue lock registry.
    """

    def __init__(self, engine: Engine, timeout: float):
        self.engine = engine
        self.timeout = timeout
        self.locks = KeyedLocks(timeout=timeout)
        self.session_factory = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, timeout: float) -> Engine:
    url = make_url(database_url)
    if url.drivername.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": timeout}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_timeout=timeout,
        connect_args={"options": f"-c statement_timeout={int(timeout * 1000)}"},
    )


def build_store(database_url: Optional[str] = None, timeout: Optional[float] = None) -> Store:
    timeout = timeout if timeout is not None else settings.store_timeout_seconds
    engine = build_engine(database_url or settings.database_url, timeout)
    return Store(engine, timeout)


def store_errors(fn: F) -> F:
    """Translate store outages and timeouts into StoreUnavailableError."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (OperationalError, PoolTimeoutError) as e:
            logger.warning("store unavailable in %s: %s", fn.__qualname__, e)
            raise StoreUnavailableError("Backing store unavailable, please retry") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                logger.warning("store connection lost in %s: %s", fn.__qualname__, e)
                raise StoreUnavailableError("Backing store unavailable, please retry") from e
            raise

    return wrapper  # type: ignore[return-value]


def get_store(request: Request) -> Store:
    return request.app.state.store


def get_db(store: Store = Depends(get_store)) -> Iterator[Session]:
    db = store.session()
    try:
        yield db
    finally:
        db.close()
