"""
BatchScheduler -- In-process hourly runner for the batch processor.

Contract:
    ``tick()`` runs one batch and returns its result (or None when the
    run was skipped or crashed).  ``start()`` / ``stop()`` drive a
    background thread that ticks every ``interval_seconds``.

Invariants enforced:
    - A contended lock is an expected outcome: logged as
      ``batch_already_running`` and the loop continues.
    - Graceful shutdown: ``stop()`` signals the loop and waits for the
      current tick to finish.

Non-goals:
    - NOT a distributed scheduler; the run lock is what makes several
      processes safe.
"""

from __future__ import annotations

import threading

from payout_batch.domain.types import BatchRunResult, RunTrigger
from payout_batch.services.processor import BatchProcessor
from payout_kernel.exceptions import LockContentionError
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class BatchScheduler:
    def __init__(
        self,
        processor: BatchProcessor,
        interval_seconds: float = 3600,
    ):
        self._processor = processor
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._runs = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> BatchRunResult | None:
        """Run one batch now (public for testing)."""
        try:
            result = self._processor.process_expired_batches(trigger=RunTrigger.SCHEDULER)
        except LockContentionError as exc:
            logger.info(
                "batch_already_running",
                extra={"lock_name": exc.lock_name, "current_holder": exc.holder},
            )
            return None
        except Exception:
            logger.exception("scheduler_tick_failed")
            return None

        self._runs += 1
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="payout-batch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the loop to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped", extra={"runs": self._runs})

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def runs(self) -> int:
        return self._runs

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
