"""
PaymentReviewService -- staff actions on pending payments.

Contract:
    - ``process_payment_manually()`` is the admin override: the payment is
      approved now, regardless of age or flag, with the same atomic
      transition + split as the batch run.
    - ``flag_payment()`` / ``unflag_payment()`` place and lift the manual
      hold that excludes a payment from auto-approval.

Invariants enforced:
    - Only ``pending`` payments can be processed, flagged or unflagged.
    - Flag changes go through the ORM, which bumps ``version``; a batch
      run holding an older snapshot therefore skips the payment.
    - Each call commits its own transaction.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from payout_batch.domain.types import Disposition, DispositionResult
from payout_batch.notifications import LoggingNotifier, PaymentNotifier
from payout_batch.services.disposition import DispositionEngine, append_note
from payout_config.schema import PayoutConfiguration
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import PaymentSnapshot
from payout_kernel.exceptions import PaymentNotFoundError, PaymentNotPendingError
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models.payment import PaymentModel

logger = get_logger("batch.review")

FLAG_MARKER = "[FLAGGED]"
UNFLAG_MARKER = "[UNFLAGGED]"


class PaymentReviewService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: PayoutConfiguration,
        clock: Clock | None = None,
        notifier: PaymentNotifier | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._disposition = DispositionEngine(config, self._clock)

    def process_payment_manually(
        self, payment_id: UUID, actor_id: UUID,
    ) -> DispositionResult:
        """Approve one pending payment now.

        Raises:
            PaymentNotFoundError: no such payment.
            PaymentNotPendingError: the payment has already left ``pending``.
        """
        batch_id = f"manual_{self._clock.now():%Y%m%dT%H%M%S}_{str(payment_id)[:8]}"
        with LogContext.bind(actor_id=str(actor_id), correlation_id=batch_id):
            with self._session_factory() as session:
                payment = self._load_pending(session, payment_id)
                snapshot = payment.to_snapshot()
                # Release the read before the conditional write.
                session.commit()

                result = self._disposition.dispose(
                    session, snapshot, batch_id, manual=True, actor_id=actor_id,
                )
                session.commit()

            logger.info(
                "payment_processed_manually",
                extra={
                    "payment_id": str(payment_id),
                    "outcome": result.outcome.value,
                    "actor_id": str(actor_id),
                },
            )
            if result.outcome != Disposition.SKIPPED:
                self._notifier.notify(result.payment_id, result.outcome, result.reason)
        return result

    def flag_payment(
        self, payment_id: UUID, reason: str, actor_id: UUID,
    ) -> PaymentSnapshot:
        """Hold a pending payment out of auto-approval."""
        now = self._clock.now()
        with self._session_factory() as session:
            payment = self._load_pending(session, payment_id)
            payment.flagged = True
            payment.flag_reason = reason
            payment.notes = append_note(
                payment.notes, f"{FLAG_MARKER} {reason} ({now.isoformat()})"
            )
            payment.updated_by_id = actor_id
            session.commit()
            snapshot = payment.to_snapshot()

        logger.info(
            "payment_flagged",
            extra={
                "payment_id": str(payment_id),
                "actor_id": str(actor_id),
                "reason": reason,
            },
        )
        return snapshot

    def unflag_payment(self, payment_id: UUID, actor_id: UUID) -> PaymentSnapshot:
        """Lift the hold; the payment's original window applies again."""
        now = self._clock.now()
        with self._session_factory() as session:
            payment = self._load_pending(session, payment_id)
            payment.flagged = False
            payment.flag_reason = None
            payment.notes = append_note(
                payment.notes, f"{UNFLAG_MARKER} ({now.isoformat()})"
            )
            payment.updated_by_id = actor_id
            session.commit()
            snapshot = payment.to_snapshot()

        logger.info(
            "payment_unflagged",
            extra={"payment_id": str(payment_id), "actor_id": str(actor_id)},
        )
        return snapshot

    def _load_pending(self, session: Session, payment_id: UUID) -> PaymentModel:
        payment = session.get(PaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        if not payment.is_pending:
            raise PaymentNotPendingError(str(payment_id), payment.status)
        return payment
