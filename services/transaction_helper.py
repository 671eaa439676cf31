"""
Transaction Helper Service

Wraps service operations in a single unit of work:
- Commit on success, rollback on failure results and exceptions
- Retry on dropped connections
- Per-resource locks that close read-then-write windows (conflict checks,
  existing-invoice checks, number allocation) until the commit
"""

from functools import wraps
from typing import Callable, List
import logging
import threading
import time
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, IntegrityError, DisconnectionError
from app import db
from .results import ServiceResult

logger = logging.getLogger(__name__)

_SESSION_LOCKS_KEY = 'fleetx_resource_locks'

# Process-local locks for engines without advisory locks (SQLite)
_local_locks = {}
_local_locks_guard = threading.Lock()


def _local_lock_for(key: str) -> threading.RLock:
    with _local_locks_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _local_locks[key] = lock
        return lock


class TransactionHelper:
    """Helper class for managing database transactions safely"""

    max_retries = 3
    retry_backoff = 0.5

    @staticmethod
    def with_transaction(func: Callable) -> Callable:
        """
        Decorator that wraps a function in a database transaction.
        Automatically handles commit/rollback and retries dropped connections.

        Usage:
            @TransactionHelper.with_transaction
            def advance_status(self, trip_id, status):
                # Your database operations here
                return ServiceResult.ok(trip)
        """
        @wraps(func)
        def wrapper(*args, **kwargs):
            max_retries = TransactionHelper.max_retries
            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)

                    # Handle service result pattern: (success: bool, errors, ...)
                    if isinstance(result, tuple) and len(result) >= 2 and isinstance(result[0], bool):
                        if result[0]:
                            db.session.commit()
                        else:
                            db.session.rollback()
                        return result

                    # Non-service pattern, commit normally
                    db.session.commit()
                    return result

                except IntegrityError as e:
                    db.session.rollback()
                    logger.warning(f"Integrity conflict in {func.__name__}: {e.orig}")
                    return ServiceResult.state_error(
                        "The record was changed by another request. Please retry.")

                except (OperationalError, DisconnectionError) as e:
                    db.session.rollback()
                    logger.error(f"Transaction error in {func.__name__} "
                                 f"(attempt {attempt + 1}/{max_retries}): {str(e)}")
                    if attempt < max_retries - 1:
                        time.sleep(TransactionHelper.retry_backoff * (2 ** attempt))
                        continue
                    logger.error(f"Transaction failed after {max_retries} attempts: {str(e)}")
                    raise

                except Exception as e:
                    db.session.rollback()
                    logger.error(f"Unexpected error in {func.__name__}: {str(e)}")
                    raise

                finally:
                    TransactionHelper.release_locks()
            return None
        return wrapper

    @staticmethod
    def acquire_locks(*keys: str) -> List[str]:
        """
        Lock resource keys such as 'vehicle:3' or 'trip:12' until the
        surrounding transaction ends.

        PostgreSQL uses transaction-scoped advisory locks; other engines fall
        back to process-local locks released by with_transaction. Keys are
        taken in sorted order so concurrent callers cannot deadlock.
        """
        ordered = sorted({key for key in keys if key})
        if not ordered:
            return []

        if db.engine.dialect.name == 'postgresql':
            for key in ordered:
                db.session.execute(text('SELECT pg_advisory_xact_lock(hashtext(:key))'), {'key': key})
            logger.debug(f"Advisory locks taken: {ordered}")
            return ordered

        held = db.session.info.setdefault(_SESSION_LOCKS_KEY, [])
        for key in ordered:
            lock = _local_lock_for(key)
            lock.acquire()
            held.append(lock)
        logger.debug(f"Local locks taken: {ordered}")
        return ordered

    @staticmethod
    def release_locks():
        """Release process-local locks taken in the current session"""
        held = db.session.info.pop(_SESSION_LOCKS_KEY, [])
        for lock in reversed(held):
            lock.release()
