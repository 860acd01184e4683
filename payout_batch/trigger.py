"""
BatchTrigger -- framework-agnostic entry point for cron and manual runs.

Contract:
    ``handle(TriggerRequest)`` returns a ``TriggerResponse`` (status code
    plus JSON-serializable body) and never raises.  GET and POST behave
    the same; ``dry_run=true`` reports the batch status without mutation.

Invariants enforced:
    - In production the credential check runs before anything touches
      the database: a missing or wrong secret is answered 401 with zero
      reads or writes.  A missing secret configuration is answered 500.
    - Secrets are compared with ``hmac.compare_digest``.
    - Unexpected errors become a generic 500; exception text goes to the
      log, never to the response.

Response body (run):
    {"success", "timestamp", "batchId", "duration",
     "summary": {"total", "processed", "skipped", "failed", "remaining"},
     "details": [...],          # only when results exist
     "notProcessed": [...]}     # ids cut off by the time budget, if any
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from typing import Any, Mapping

from payout_batch.domain.types import (
    BatchRunResult,
    BatchStatus,
    Disposition,
    DispositionResult,
    RunTrigger,
)
from payout_batch.services.processor import BatchProcessor
from payout_config.settings import RuntimeSettings
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.exceptions import AuthenticationError, LockContentionError
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.trigger")

_DETAIL_STATUS = {
    Disposition.APPROVED: "processed",
    Disposition.SKIPPED: "skipped",
    Disposition.FAILED: "failed",
}


@dataclass(frozen=True)
class TriggerRequest:
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None

    @property
    def is_dry_run(self) -> bool:
        return str(self.query.get("dry_run", "")).lower() == "true"


@dataclass(frozen=True)
class TriggerResponse:
    status_code: int
    body: dict[str, Any]


def format_duration(duration_ms: int) -> str:
    """``"<n>ms"`` under a second, ``"<x.x>s"`` under a minute, else ``"<m>m <s>s"``."""
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    if duration_ms < 60_000:
        return f"{duration_ms / 1000:.1f}s"
    minutes, rest = divmod(duration_ms, 60_000)
    # Whole seconds, rounded half up.
    return f"{minutes}m {(rest + 500) // 1000}s"


def batch_status_to_json(status: BatchStatus) -> dict[str, Any]:
    return {
        "totalPending": status.total_pending,
        "eligibleForAutoProcess": status.eligible_count,
        "flaggedCount": status.flagged_count,
        "totalPendingAmount": str(status.total_pending_amount),
        "eligibleAmount": str(status.eligible_amount),
        "oldestPaymentAge": status.oldest_pending_age_hours,
        "windowHours": status.window_hours,
        "nextEligibleAt": (
            status.next_eligible_at.isoformat() if status.next_eligible_at else None
        ),
    }


def disposition_to_json(result: DispositionResult) -> dict[str, Any]:
    detail: dict[str, Any] = {
        "paymentId": str(result.payment_id),
        "solutionTitle": result.subject_title or "Unknown Solution",
        "amount": str(result.amount) if result.amount is not None else None,
        "status": _DETAIL_STATUS[result.outcome],
        "reason": result.reason,
    }
    if result.outcome == Disposition.APPROVED:
        detail["splitsCreated"] = len(result.split or {})
    if result.error_code:
        detail["errorCode"] = result.error_code
    return detail


def run_result_to_json(result: BatchRunResult, timestamp: str) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": True,
        "timestamp": timestamp,
        "batchId": result.batch_id,
        "duration": format_duration(result.duration_ms),
        "summary": result.summary,
    }
    if result.results:
        body["details"] = [disposition_to_json(r) for r in result.results]
    if result.not_reached:
        body["notProcessed"] = [str(payment_id) for payment_id in result.not_reached]
    return body


class BatchTrigger:
    def __init__(
        self,
        processor: BatchProcessor,
        settings: RuntimeSettings,
        clock: Clock | None = None,
        run_trigger: RunTrigger = RunTrigger.CRON,
    ):
        self._processor = processor
        self._settings = settings
        self._clock = clock or SystemClock()
        self._run_trigger = run_trigger

    def handle(self, request: TriggerRequest) -> TriggerResponse:
        timestamp = self._clock.now().isoformat()
        method = request.method.upper()

        if method not in ("GET", "POST"):
            return TriggerResponse(405, {"success": False, "error": "Method not allowed"})

        logger.info("batch_trigger_received", extra={"method": method})

        if self._settings.is_production:
            if not self._settings.cron_secret:
                logger.error("batch_trigger_secret_not_configured")
                return TriggerResponse(500, {"error": "Server configuration error"})
            try:
                self.authenticate(request)
            except AuthenticationError as exc:
                logger.warning(
                    "batch_trigger_unauthorized",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                return TriggerResponse(401, {"error": "Unauthorized"})

        if request.is_dry_run:
            return self._dry_run(timestamp)
        return self._run(timestamp)

    def authenticate(self, request: TriggerRequest) -> None:
        """Accept ``Authorization: Bearer <secret>`` or ``X-Cron-Secret: <secret>``.

        Raises:
            AuthenticationError: neither header carries the secret.
        """
        secret = (self._settings.cron_secret or "").encode()
        candidates: list[str] = []

        authorization = request.header("Authorization")
        if authorization and authorization.startswith("Bearer "):
            candidates.append(authorization[len("Bearer "):])
        cron_header = request.header("X-Cron-Secret")
        if cron_header:
            candidates.append(cron_header)

        if not candidates:
            raise AuthenticationError("Missing credential")
        for candidate in candidates:
            if secret and hmac.compare_digest(candidate.encode(), secret):
                return
        raise AuthenticationError("Invalid credential")

    def _dry_run(self, timestamp: str) -> TriggerResponse:
        try:
            status = self._processor.get_batch_status()
        except Exception:
            logger.exception("batch_dry_run_failed")
            return TriggerResponse(
                500,
                {"success": False, "error": "Failed to get batch status", "timestamp": timestamp},
            )
        return TriggerResponse(
            200,
            {
                "mode": "dry_run",
                "timestamp": timestamp,
                "status": batch_status_to_json(status),
            },
        )

    def _run(self, timestamp: str) -> TriggerResponse:
        try:
            result = self._processor.process_expired_batches(trigger=self._run_trigger)
        except LockContentionError:
            return TriggerResponse(
                409,
                {
                    "success": False,
                    "status": "batch_already_running",
                    "timestamp": timestamp,
                },
            )
        except Exception:
            logger.exception("batch_trigger_failed")
            return TriggerResponse(
                500,
                {
                    "success": False,
                    "error": "Batch processing failed",
                    "timestamp": timestamp,
                },
            )

        body = run_result_to_json(result, timestamp)
        logger.info(
            "batch_trigger_completed",
            extra={"batch_id": result.batch_id, **result.summary},
        )
        return TriggerResponse(200, body)
