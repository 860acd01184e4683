"""
BatchProcessor -- one linear pass over expired pending payments.

Contract:
    ``process_expired_batches()`` acquires the run lock, discovers
    eligible payments (capped at ``max_batch_size``), disposes each in
    order and commits after every payment, then records the run and
    releases the lock.  Returns a ``BatchRunResult``.

Invariants enforced:
    - Overlap guard: a second concurrent invocation raises
      LockContentionError before any discovery or payment mutation.
    - Isolation: one payment's failure never aborts the run;
      total == processed + skipped + failed.
    - Durability: each payment's outcome is committed before the next
      payment starts, so a killed run keeps its completed work.
    - Budget: the wall-clock budget is checked before each payment;
      unreached payments (and eligible ones beyond the cap) are reported
      as ``remaining``; discovered ones the budget cut off are also
      listed in ``not_reached``.
    - All timestamps from the injected Clock.

Failure modes:
    - LockContentionError: another run holds the lock.
    - Discovery failure: the run is recorded FAILED and the error
      propagates; no payment has been touched.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payout_batch.domain.types import (
    BatchRunResult,
    BatchRunStatus,
    BatchStatus,
    Disposition,
    DispositionResult,
    RunTrigger,
)
from payout_batch.models.batch import BatchRunItemModel, BatchRunModel
from payout_batch.notifications import LoggingNotifier, PaymentNotifier
from payout_batch.services.discovery import PaymentDiscovery
from payout_batch.services.disposition import DispositionEngine
from payout_batch.services.run_lock import RunLock
from payout_config.schema import PayoutConfiguration
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import PersistenceError
from payout_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.processor")


def new_batch_id(clock: Clock) -> str:
    return f"batch_{clock.now():%Y%m%dT%H%M%S}_{uuid4().hex[:8]}"


def run_status(processed: int, skipped: int, failed: int, remaining: int) -> BatchRunStatus:
    if failed == 0 and remaining == 0:
        return BatchRunStatus.COMPLETED
    if failed > 0 and processed == 0 and skipped == 0:
        return BatchRunStatus.FAILED
    return BatchRunStatus.PARTIALLY_COMPLETED


class BatchProcessor:
    """Runs batches against a session factory.

    Non-goals:
        - Does NOT run in parallel; one pass per invocation.
        - Does NOT manage background threads -- that is the scheduler's job.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: PayoutConfiguration,
        clock: Clock | None = None,
        notifier: PaymentNotifier | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._monotonic = monotonic
        self._policy = config.batch
        self._disposition = DispositionEngine(config, self._clock)
        self._lock = RunLock(
            session_factory,
            name=self._policy.lock_name,
            ttl_seconds=self._policy.lock_ttl_seconds,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get_batch_status(self) -> BatchStatus:
        with self._session_factory() as session:
            discovery = PaymentDiscovery(session, self._policy.pending_window_hours)
            return discovery.get_batch_status(self._clock.now())

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def process_expired_batches(
        self,
        trigger: RunTrigger = RunTrigger.MANUAL,
    ) -> BatchRunResult:
        """Process every eligible payment (up to the cap) once.

        Raises:
            LockContentionError: If another run holds the lock.
        """
        batch_id = new_batch_id(self._clock)
        with LogContext.bind(
            correlation_id=batch_id,
            actor_id=str(self._policy.actor_id),
        ):
            self._lock.acquire(batch_id)
            try:
                return self._run(batch_id, trigger)
            finally:
                self._lock.release(batch_id)

    def _run(self, batch_id: str, trigger: RunTrigger) -> BatchRunResult:
        start = self._monotonic()
        started_at = self._clock.now()
        actor_id = self._policy.actor_id

        with self._session_factory() as session:
            run = BatchRunModel(
                batch_id=batch_id,
                status=BatchRunStatus.RUNNING.value,
                trigger=trigger.value,
                started_at=started_at,
                config_checksum=self._config.checksum or None,
                created_by_id=actor_id,
            )
            session.add(run)
            session.commit()

            logger.info(
                "batch_run_started",
                extra={"batch_id": batch_id, "trigger": trigger.value},
            )

            try:
                discovery = PaymentDiscovery(session, self._policy.pending_window_hours)
                candidates = discovery.find_expired_pending_payments(
                    started_at, limit=self._policy.max_batch_size,
                )
                eligible_total = discovery.count_expired_pending_payments(started_at)
                # End the read transaction before per-payment writes.
                session.commit()
            except Exception as exc:
                session.rollback()
                self._abort_run(session, run, exc, start)
                raise

            results: list[DispositionResult] = []
            for index, snapshot in enumerate(candidates):
                if self._monotonic() - start >= self._policy.time_budget_seconds:
                    logger.warning(
                        "batch_time_budget_exhausted",
                        extra={
                            "batch_id": batch_id,
                            "reached": index,
                            "candidates": len(candidates),
                        },
                    )
                    break

                result = self._dispose_and_commit(session, snapshot, batch_id)
                results.append(result)
                self._record_item(session, run, result, index)
                self._notify(result)

            not_reached = tuple(s.payment_id for s in candidates[len(results):])
            return self._finalize(
                session, run, results, eligible_total, start, not_reached,
            )

    def _dispose_and_commit(self, session, snapshot, batch_id) -> DispositionResult:
        result = self._disposition.dispose(session, snapshot, batch_id)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            error = PersistenceError("commit", str(snapshot.payment_id), type(exc).__name__)
            logger.error(
                "payment_failed",
                extra={
                    "batch_id": batch_id,
                    "payment_id": str(snapshot.payment_id),
                    "stage": "commit",
                    "error_code": error.code,
                    "cause": str(exc),
                },
            )
            return DispositionResult(
                payment_id=snapshot.payment_id,
                outcome=Disposition.FAILED,
                reason=f"Commit failed ({type(exc).__name__}); payment left pending",
                error_code=error.code,
                amount=snapshot.amount,
                subject_title=snapshot.subject_title,
                duration_ms=result.duration_ms,
            )
        return result

    def _record_item(
        self,
        session: Session,
        run: BatchRunModel,
        result: DispositionResult,
        index: int,
    ) -> None:
        try:
            session.add(
                BatchRunItemModel.from_dto(
                    result,
                    run_id=run.id,
                    item_index=index,
                    created_by_id=self._policy.actor_id,
                )
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "batch_run_item_not_recorded",
                extra={"payment_id": str(result.payment_id)},
            )

    def _notify(self, result: DispositionResult) -> None:
        if result.outcome == Disposition.SKIPPED:
            return
        try:
            self._notifier.notify(result.payment_id, result.outcome, result.reason)
        except Exception:
            logger.exception(
                "payment_notification_failed",
                extra={"payment_id": str(result.payment_id)},
            )

    def _finalize(
        self,
        session: Session,
        run: BatchRunModel,
        results: list[DispositionResult],
        eligible_total: int,
        start: float,
        not_reached: tuple[UUID, ...] = (),
    ) -> BatchRunResult:
        processed = sum(1 for r in results if r.outcome == Disposition.APPROVED)
        skipped = sum(1 for r in results if r.outcome == Disposition.SKIPPED)
        failed = sum(1 for r in results if r.outcome == Disposition.FAILED)
        # Payments this run did not reach.  Anything approved after discovery
        # by a staff edit is not ours to count.
        remaining = max(0, eligible_total - len(results))
        status = run_status(processed, skipped, failed, remaining)
        duration_ms = int((self._monotonic() - start) * 1000)
        completed_at = self._clock.now()

        run.status = status.value
        run.total = len(results)
        run.processed = processed
        run.skipped = skipped
        run.failed = failed
        run.remaining = remaining
        run.duration_ms = duration_ms
        run.completed_at = completed_at
        run.updated_by_id = self._policy.actor_id
        if failed:
            run.error_summary = f"{failed} payment(s) failed"
        session.commit()

        logger.info(
            "batch_run_completed",
            extra={
                "batch_id": run.batch_id,
                "status": status.value,
                "total": len(results),
                "processed": processed,
                "skipped": skipped,
                "failed": failed,
                "remaining": remaining,
                "not_reached": len(not_reached),
                "duration_ms": duration_ms,
            },
        )

        return BatchRunResult(
            batch_id=run.batch_id,
            status=status,
            total=len(results),
            processed=processed,
            skipped=skipped,
            failed=failed,
            remaining=remaining,
            results=tuple(results),
            started_at=run.started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            trigger=RunTrigger(run.trigger),
            not_reached=not_reached,
        )

    def _abort_run(
        self,
        session: Session,
        run: BatchRunModel,
        exc: Exception,
        start: float,
    ) -> None:
        run.status = BatchRunStatus.FAILED.value
        run.completed_at = self._clock.now()
        run.duration_ms = int((self._monotonic() - start) * 1000)
        run.error_summary = f"discovery failed: {type(exc).__name__}"
        run.updated_by_id = self._policy.actor_id
        session.commit()
        logger.error(
            "batch_run_failed",
            extra={
                "batch_id": run.batch_id,
                "stage": "discovery",
                "cause": str(exc),
            },
        )
