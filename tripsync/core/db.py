"""
Database engine, session factory and transaction boundaries
"""

import logging
import math
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from tripsync.core.errors import IntegrityFailure
from tripsync.core.retry import RetryPolicy, is_lock_contention, run_with_retry

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


def _configure_sqlite(engine) -> None:
    """Make SQLite transactions take the write lock up front.

    pysqlite defers BEGIN until the first DML statement, so a locked read
    followed by a write would not be serialized. BEGIN IMMEDIATE gives the
    same guarantee a row lock gives on a server database, and the busy
    timeout turns a stuck writer into a "database is locked" error.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Store:
    """Owns the engine and hands out sessions and retried transactions"""

    def __init__(
        self,
        database_url: str,
        lock_wait_timeout: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None,
        echo: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": lock_wait_timeout}

        self.engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)

        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self.lock_wait_timeout = lock_wait_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "Store":
        return cls(
            settings.DATABASE_URL,
            lock_wait_timeout=settings.LOCK_WAIT_TIMEOUT_SECONDS,
            retry_policy=RetryPolicy.from_settings(settings),
            echo=settings.DB_ECHO,
        )

    def create_all(self) -> None:
        # models must be imported so their tables are registered on Base
        import tripsync.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session for read-only work; nothing is committed"""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def _apply_lock_timeout(self, db: Session) -> None:
        dialect = self.engine.dialect.name
        if dialect == "mysql":
            seconds = max(1, math.ceil(self.lock_wait_timeout))
            db.execute(text(f"SET SESSION innodb_lock_wait_timeout = {seconds}"))
        elif dialect == "postgresql":
            millis = int(self.lock_wait_timeout * 1000)
            db.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))
        # sqlite: busy timeout is set on the connection

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One explicit transaction: commit on success, roll back on any error.

        Lock contention errors are re-raised untouched so a retry wrapper can
        classify them. Other store errors surface as IntegrityFailure.
        """
        db = self.SessionLocal()
        try:
            self._apply_lock_timeout(db)
            yield db
            db.commit()
        except DBAPIError as exc:
            db.rollback()
            if is_lock_contention(exc):
                raise
            logger.error(f"Transaction failed: {exc}")
            raise IntegrityFailure(details=str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Transaction failed: {exc}")
            raise IntegrityFailure(details=str(exc)) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run_in_transaction(self, work: Callable[..., T], *args, retry: bool = True, **kwargs) -> T:
        """Run work(db, *args, **kwargs) in a fresh transaction per attempt"""

        def attempt() -> T:
            with self.transaction() as db:
                return work(db, *args, **kwargs)

        if not retry:
            return attempt()
        return run_with_retry(attempt, self.retry_policy, sleep=self.sleep)
