"""
PayoutOrchestrator -- composition root for the payout batch system.

Contract:
    Wires one Clock, one PayoutConfiguration, one notifier and one
    session factory into the processor, trigger, scheduler, review and
    reconciliation services.  ``from_settings()`` builds the whole graph
    from runtime settings.

Invariants enforced:
    - Every service receives the same Clock and configuration object.
    - Immutability listeners are registered before any service runs.

Non-goals:
    - Does NOT start the scheduler automatically -- caller decides.
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from payout_batch.notifications import LoggingNotifier, PaymentNotifier
from payout_batch.services.manual import PaymentReviewService
from payout_batch.services.processor import BatchProcessor
from payout_batch.services.reconciliation import SplitReconciliationService
from payout_batch.services.scheduler import BatchScheduler
from payout_batch.trigger import BatchTrigger
from payout_config import PayoutConfiguration, get_active_config
from payout_config.settings import RuntimeSettings, load_runtime_settings
from payout_kernel.db.engine import get_session_factory, init_engine_from_url
from payout_kernel.db.immutability import register_immutability_listeners
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.orchestrator")


class PayoutOrchestrator:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: PayoutConfiguration,
        settings: RuntimeSettings | None = None,
        clock: Clock | None = None,
        notifier: PaymentNotifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._settings = settings or RuntimeSettings()
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()

        register_immutability_listeners()

        self._processor = BatchProcessor(
            session_factory,
            config,
            clock=self._clock,
            notifier=self._notifier,
        )

        logger.info(
            "payout_orchestrator_created",
            extra={
                "config_id": config.config_id,
                "checksum": config.checksum,
                "environment": self._settings.environment,
            },
        )

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings | None = None,
        clock: Clock | None = None,
        notifier: PaymentNotifier | None = None,
    ) -> PayoutOrchestrator:
        """Initialize the engine and configuration from runtime settings."""
        settings = settings or load_runtime_settings()
        init_engine_from_url(settings.database_url)
        config = get_active_config(settings.config_dir)
        return cls(
            get_session_factory(),
            config,
            settings=settings,
            clock=clock,
            notifier=notifier,
        )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def config(self) -> PayoutConfiguration:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def processor(self) -> BatchProcessor:
        return self._processor

    def create_trigger(self) -> BatchTrigger:
        return BatchTrigger(self._processor, self._settings, clock=self._clock)

    def create_scheduler(self, interval_seconds: float | None = None) -> BatchScheduler:
        return BatchScheduler(
            self._processor,
            interval_seconds=(
                interval_seconds
                if interval_seconds is not None
                else self._config.batch.schedule_interval_seconds
            ),
        )

    def create_review_service(self) -> PaymentReviewService:
        return PaymentReviewService(
            self._session_factory,
            self._config,
            clock=self._clock,
            notifier=self._notifier,
        )

    def create_reconciliation_service(self) -> SplitReconciliationService:
        return SplitReconciliationService(
            self._session_factory, self._config, clock=self._clock,
        )
