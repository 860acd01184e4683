"""
Tests for payout_batch.trigger -- the cron entry point.

Authentication runs before any database access, dry runs never mutate,
and every failure mode maps to a fixed status code and generic body.
"""

from decimal import Decimal
from uuid import UUID

import pytest

from payout_batch.domain.types import (
    BatchRunResult,
    BatchRunStatus,
    BatchStatus,
    Disposition,
    DispositionResult,
    RunTrigger,
)
from payout_batch.services.processor import BatchProcessor
from payout_batch.trigger import (
    BatchTrigger,
    TriggerRequest,
    disposition_to_json,
    format_duration,
)
from payout_config.settings import RuntimeSettings
from payout_kernel.exceptions import LockContentionError
from tests.helpers import load_payment

SECRET = "s3cr3t-cron-token"

PRODUCTION = RuntimeSettings(environment="production", cron_secret=SECRET)


class SpyProcessor:
    """Records calls; raises ``error`` if given."""

    def __init__(self, error: Exception | None = None, status: BatchStatus | None = None):
        self.calls: list[str] = []
        self._error = error
        self._status = status

    def get_batch_status(self):
        self.calls.append("get_batch_status")
        if self._error:
            raise self._error
        return self._status

    def process_expired_batches(self, trigger=RunTrigger.MANUAL):
        self.calls.append(f"process_expired_batches:{trigger.value}")
        if self._error:
            raise self._error
        return BatchRunResult(
            batch_id="batch_spy",
            status=BatchRunStatus.COMPLETED,
            total=0,
            processed=0,
            skipped=0,
            failed=0,
            trigger=trigger,
        )


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    def test_missing_credential_is_401_without_db_access(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest())

        assert response.status_code == 401
        assert response.body == {"error": "Unauthorized"}
        assert spy.calls == []

    def test_wrong_secret_is_401(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers=_bearer("guess")))

        assert response.status_code == 401
        assert spy.calls == []

    def test_wrong_secret_on_dry_run_is_401(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(
            TriggerRequest(headers=_bearer("guess"), query={"dry_run": "true"})
        )

        assert response.status_code == 401
        assert spy.calls == []

    def test_bearer_token_accepted(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(method="POST", headers=_bearer(SECRET)))

        assert response.status_code == 200
        assert spy.calls == ["process_expired_batches:cron"]

    def test_cron_secret_header_accepted_case_insensitively(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers={"x-cron-secret": SECRET}))

        assert response.status_code == 200

    def test_non_bearer_authorization_rejected(self, clock):
        trigger = BatchTrigger(SpyProcessor(), PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers={"Authorization": SECRET}))

        assert response.status_code == 401

    def test_unconfigured_secret_in_production_is_500(self, clock):
        spy = SpyProcessor()
        settings = RuntimeSettings(environment="production", cron_secret=None)
        trigger = BatchTrigger(spy, settings, clock=clock)

        response = trigger.handle(TriggerRequest(headers=_bearer("anything")))

        assert response.status_code == 500
        assert response.body == {"error": "Server configuration error"}
        assert spy.calls == []

    def test_development_skips_credential_check(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, RuntimeSettings(environment="development"), clock=clock)

        response = trigger.handle(TriggerRequest())

        assert response.status_code == 200
        assert spy.calls == ["process_expired_batches:cron"]

    def test_unauthorized_attempt_is_logged(self, clock, captured_logs):
        trigger = BatchTrigger(SpyProcessor(), PRODUCTION, clock=clock)

        trigger.handle(TriggerRequest(headers=_bearer("guess")))

        (record,) = [
            r for r in captured_logs() if r["message"] == "batch_trigger_unauthorized"
        ]
        assert record["error_code"] == "AUTHENTICATION_FAILED"
        assert SECRET not in str(record)


# =============================================================================
# Request handling
# =============================================================================


class TestResponses:
    def test_unsupported_method_is_405(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(method="DELETE", headers=_bearer(SECRET)))

        assert response.status_code == 405
        assert spy.calls == []

    def test_lock_contention_is_409(self, clock):
        spy = SpyProcessor(error=LockContentionError("payout_batch", holder="batch_x"))
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers=_bearer(SECRET)))

        assert response.status_code == 409
        assert response.body == {
            "success": False,
            "status": "batch_already_running",
            "timestamp": clock.now().isoformat(),
        }

    def test_unexpected_error_is_generic_500(self, clock, captured_logs):
        spy = SpyProcessor(error=RuntimeError("password=hunter2 in DSN"))
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers=_bearer(SECRET)))

        assert response.status_code == 500
        assert response.body == {
            "success": False,
            "error": "Batch processing failed",
            "timestamp": clock.now().isoformat(),
        }
        assert "hunter2" not in str(response.body)
        assert any(r["message"] == "batch_trigger_failed" for r in captured_logs())

    def test_dry_run_status_failure_is_500(self, clock):
        spy = SpyProcessor(error=RuntimeError("db down"))
        trigger = BatchTrigger(spy, PRODUCTION, clock=clock)

        response = trigger.handle(
            TriggerRequest(headers=_bearer(SECRET), query={"dry_run": "true"})
        )

        assert response.status_code == 500
        assert response.body["error"] == "Failed to get batch status"

    def test_run_trigger_is_passed_through(self, clock):
        spy = SpyProcessor()
        trigger = BatchTrigger(
            spy, RuntimeSettings(), clock=clock, run_trigger=RunTrigger.CLI,
        )

        trigger.handle(TriggerRequest(method="POST"))

        assert spy.calls == ["process_expired_batches:cli"]


class TestAgainstDatabase:
    @pytest.fixture
    def trigger(self, session_factory, config, clock):
        processor = BatchProcessor(session_factory, config, clock=clock)
        return BatchTrigger(processor, PRODUCTION, clock=clock)

    def test_dry_run_reports_without_mutation(
        self, trigger, make_payment, session_factory, clock,
    ):
        old = make_payment(amount="10000.00", age_hours=50)
        make_payment(amount="5000.00", age_hours=10)

        response = trigger.handle(
            TriggerRequest(headers=_bearer(SECRET), query={"dry_run": "true"})
        )

        assert response.status_code == 200
        assert response.body["mode"] == "dry_run"
        assert response.body["timestamp"] == clock.now().isoformat()
        assert response.body["status"] == {
            "totalPending": 2,
            "eligibleForAutoProcess": 1,
            "flaggedCount": 0,
            "totalPendingAmount": "15000.00",
            "eligibleAmount": "10000.00",
            "oldestPaymentAge": 50,
            "windowHours": 48,
            "nextEligibleAt": "2026-01-03T02:00:00+00:00",
        }
        assert load_payment(session_factory, old.id).status == "pending"

    def test_run_body(self, trigger, make_payment, clock):
        ok = make_payment(amount="10000.00", age_hours=50, title="Inventory Portal")
        broken = make_payment(amount="700.00", age_hours=60, subject="content", title=None)

        response = trigger.handle(TriggerRequest(method="POST", headers=_bearer(SECRET)))

        assert response.status_code == 200
        body = response.body
        assert body["success"] is True
        assert body["batchId"].startswith("batch_20260101T120000_")
        assert body["summary"] == {
            "total": 2,
            "processed": 1,
            "skipped": 0,
            "failed": 1,
            "remaining": 0,
        }
        details = {d["paymentId"]: d for d in body["details"]}
        assert details[str(ok.id)] == {
            "paymentId": str(ok.id),
            "solutionTitle": "Inventory Portal",
            "amount": "10000.00",
            "status": "processed",
            "reason": "Auto-approved after 48h pending window",
            "splitsCreated": 2,
        }
        assert details[str(broken.id)]["status"] == "failed"
        assert details[str(broken.id)]["solutionTitle"] == "Unknown Solution"
        assert details[str(broken.id)]["errorCode"] == "CONFIGURATION_ERROR"

    def test_empty_run_has_no_details(self, trigger):
        response = trigger.handle(TriggerRequest(headers=_bearer(SECRET)))

        assert response.status_code == 200
        assert "details" not in response.body
        assert "notProcessed" not in response.body
        assert response.body["summary"]["total"] == 0

    def test_budget_cut_lists_unreached_payments(self, clock):
        class BudgetCutProcessor(SpyProcessor):
            def process_expired_batches(self, trigger=RunTrigger.MANUAL):
                return BatchRunResult(
                    batch_id="batch_cut",
                    status=BatchRunStatus.PARTIALLY_COMPLETED,
                    total=0,
                    processed=0,
                    skipped=0,
                    failed=0,
                    remaining=2,
                    not_reached=(UUID(int=1), UUID(int=2)),
                )

        trigger = BatchTrigger(BudgetCutProcessor(), PRODUCTION, clock=clock)

        response = trigger.handle(TriggerRequest(headers=_bearer(SECRET)))

        assert response.status_code == 200
        assert response.body["summary"]["remaining"] == 2
        assert response.body["notProcessed"] == [str(UUID(int=1)), str(UUID(int=2))]


# =============================================================================
# Formatting helpers
# =============================================================================


class TestFormatDuration:
    @pytest.mark.parametrize(
        "ms, expected",
        [
            (0, "0ms"),
            (999, "999ms"),
            (1000, "1.0s"),
            (1540, "1.5s"),
            (42_000, "42.0s"),
            (60_000, "1m 0s"),
            (60_400, "1m 0s"),
            (61_999, "1m 2s"),
            (125_900, "2m 6s"),
        ],
    )
    def test_format(self, ms, expected):
        assert format_duration(ms) == expected


class TestDispositionJson:
    def test_skipped_detail_has_no_split_count(self):
        detail = disposition_to_json(
            DispositionResult(
                payment_id=UUID(int=7),
                outcome=Disposition.SKIPPED,
                reason="Payment is no longer pending or changed since discovery",
                amount=Decimal("12.50"),
            )
        )

        assert detail["status"] == "skipped"
        assert detail["amount"] == "12.50"
        assert "splitsCreated" not in detail
        assert "errorCode" not in detail
