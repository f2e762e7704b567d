"""
Deadlock / lock-wait retry around transactional units of work
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError

from tripsync.core.errors import RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL: ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
MYSQL_CONTENTION_CODES = {1205, 1213}
# PostgreSQL: deadlock_detected, lock_not_available, serialization_failure
POSTGRES_CONTENTION_STATES = {"40P01", "55P03", "40001"}
SQLITE_CONTENTION_MESSAGES = ("database is locked", "database table is locked")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff; delays are in seconds"""

    max_retries: int = 3
    base_delay: float = 0.05
    max_delay: float = 0.5

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY_MS / 1000.0,
            max_delay=settings.RETRY_MAX_DELAY_MS / 1000.0,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows failed attempt number `attempt` (1-based)"""
        return min(self.max_delay, self.base_delay * (2 ** attempt))


def is_lock_contention(exc: BaseException) -> bool:
    """Return True when the driver error means deadlock or lock-wait timeout"""
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    if orig is None:
        return False

    # pymysql / mysqlclient put the server error code first
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in MYSQL_CONTENTION_CODES:
        return True

    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    state = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if state in POSTGRES_CONTENTION_STATES:
        return True

    message = str(orig).lower()
    return any(text in message for text in SQLITE_CONTENTION_MESSAGES)


def run_with_retry(
    work: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `work`, retrying lock-contention failures with exponential backoff.

    `work` must start from a clean transaction on every call. Errors that are
    not lock contention propagate immediately. When every attempt fails with
    contention, RetryExhausted is raised with the last driver error chained.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return work()
        except DBAPIError as exc:
            if not is_lock_contention(exc):
                raise
            if attempt >= policy.max_retries:
                logger.error(f"Lock contention persisted after {attempt} attempts: {exc.orig}")
                raise RetryExhausted(attempt) from exc
            delay = policy.delay_for(attempt)
            logger.warning(
                f"Lock contention detected, retrying ({attempt}/{policy.max_retries}) in {delay * 1000:.0f}ms: {exc.orig}"
            )
            sleep(delay)
