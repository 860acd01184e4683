"""
RunLock -- database-backed overlap guard for batch invocations.

Contract:
    ``acquire(holder)`` either makes ``holder`` the owner of the named
    lock or raises ``LockContentionError`` without side effects on
    payments.  ``release(holder)`` deletes the row only if ``holder``
    still owns it.

Invariants enforced:
    - Acquisition is an INSERT committed in its own short transaction, so
      a second invocation sees it immediately.
    - An expired lock (``expires_at <= now``) is taken over with a
      conditional UPDATE; of two racing takeovers exactly one matches.
    - Release never removes a lock another holder has taken over.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from payout_batch.models.batch import BatchRunLockModel
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import LockContentionError
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.run_lock")


class RunLock:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        name: str,
        ttl_seconds: int = 900,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._name = name
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()

    @property
    def name(self) -> str:
        return self._name

    def acquire(self, holder: str) -> datetime:
        """Take the lock for ``holder``; returns its expiry.

        Raises:
            LockContentionError: another holder owns an unexpired lock.
        """
        now = self._clock.now()
        expires_at = now + self._ttl

        with self._session_factory() as session:
            session.add(
                BatchRunLockModel(
                    name=self._name,
                    holder=holder,
                    acquired_at=now,
                    expires_at=expires_at,
                )
            )
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                logger.info(
                    "batch_lock_acquired",
                    extra={"lock_name": self._name, "holder": holder},
                )
                return expires_at

            taken_over = session.execute(
                update(BatchRunLockModel)
                .where(
                    BatchRunLockModel.name == self._name,
                    BatchRunLockModel.expires_at <= now,
                )
                .values(holder=holder, acquired_at=now, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            if taken_over.rowcount == 1:
                session.commit()
                logger.warning(
                    "batch_lock_taken_over",
                    extra={"lock_name": self._name, "holder": holder},
                )
                return expires_at
            session.rollback()

            current_holder = session.scalar(
                select(BatchRunLockModel.holder).where(
                    BatchRunLockModel.name == self._name
                )
            )

        logger.warning(
            "batch_lock_contended",
            extra={
                "lock_name": self._name,
                "holder": holder,
                "current_holder": current_holder,
            },
        )
        raise LockContentionError(self._name, holder=current_holder)

    def release(self, holder: str) -> bool:
        """Delete the lock if ``holder`` still owns it."""
        with self._session_factory() as session:
            result = session.execute(
                delete(BatchRunLockModel)
                .where(
                    BatchRunLockModel.name == self._name,
                    BatchRunLockModel.holder == holder,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            released = result.rowcount == 1

        if released:
            logger.info(
                "batch_lock_released",
                extra={"lock_name": self._name, "holder": holder},
            )
        else:
            logger.warning(
                "batch_lock_release_skipped",
                extra={"lock_name": self._name, "holder": holder},
            )
        return released
