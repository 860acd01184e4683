"""
Module: payout_engines.revenue_split
Responsibility:
    Divide an approved payment's amount among its recipient types
    according to the revenue split configuration, with deterministic
    rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only payout_kernel/domain.  Persisting the resulting lines
    is the disposition engine's job.

Invariants enforced:
    - Conservation: the line amounts sum to the payment amount exactly.
    - Rounding: largest remainder.  Each line is first truncated to the
      currency quantum; the leftover quanta are handed out one at a time
      by largest truncated remainder (ties: larger share, then
      configuration order).  Any sub-quantum leftover from an amount
      finer than the currency goes to the largest share.
    - Non-negative: no line is ever below zero.
    - No silent default: an unmatched subject raises ConfigurationError.

Failure modes:
    - ConfigurationError when no bucket covers (subject_type, category).
    - ValueError when the amount is not positive.

Usage:
    from payout_engines.revenue_split import compute_split

    result = compute_split(snapshot, config.revenue_splits)
    for line in result.lines:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Mapping
from uuid import UUID

from payout_engines.tracer import traced_engine
from payout_kernel.domain.types import PaymentSnapshot

if TYPE_CHECKING:
    from payout_config.schema import RevenueSplitConfiguration


@dataclass(frozen=True)
class SplitLine:
    """One recipient's portion of a payment."""

    recipient_type: str
    share: Decimal
    amount: Decimal
    recipient_id: str | None = None
    recipient_name: str | None = None
    absorbed_rounding: bool = False


@dataclass(frozen=True)
class SplitResult:
    """
    Outcome of one split computation.

    Guarantees:
        sum(line.amount for line in lines) == amount.
    """

    payment_id: UUID
    amount: Decimal
    subject_type: str
    bucket_category: str
    lines: tuple[SplitLine, ...]
    rounding_residual: Decimal

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    def summary(self) -> dict[str, str]:
        """recipient_type -> amount string, for result reporting."""
        return {line.recipient_type: str(line.amount) for line in self.lines}


class RevenueSplitCalculator:
    """Stateless calculator; holds no configuration of its own."""

    @traced_engine(
        "revenue_split",
        "1.0",
        fingerprint_fields=("amount", "subject_type", "category"),
        describe=lambda result: {
            "bucket": f"{result.subject_type}/{result.bucket_category}",
            "line_count": len(result.lines),
            "rounding_residual": str(result.rounding_residual),
        },
    )
    def compute(
        self,
        *,
        payment_id: UUID,
        amount: Decimal,
        subject_type: str,
        category: str | None,
        recipients: Mapping[str, str],
        config: RevenueSplitConfiguration,
    ) -> SplitResult:
        if amount <= 0:
            raise ValueError(f"Split amount must be positive, got {amount}")

        bucket = config.resolve(subject_type, category)
        quantum = config.quantum

        exact = [amount * r.share for r in bucket.recipients]
        amounts = [e.quantize(quantum, rounding=ROUND_DOWN) for e in exact]
        residual = amount - sum(amounts, Decimal("0"))

        # Largest remainder first, then larger share, then configuration order.
        order = sorted(
            range(len(amounts)),
            key=lambda i: (amounts[i] - exact[i], -bucket.recipients[i].share, i),
        )
        whole_quanta = min(int(residual // quantum), len(amounts))
        absorbed = set(order[:whole_quanta])
        for i in absorbed:
            amounts[i] += quantum

        leftover = residual - quantum * whole_quanta
        if leftover:
            largest = max(range(len(amounts)), key=lambda i: bucket.recipients[i].share)
            amounts[largest] += leftover
            absorbed.add(largest)

        lines = [
            SplitLine(
                recipient_type=recipient.recipient_type,
                share=recipient.share,
                amount=amounts[i],
                recipient_id=recipients.get(recipient.recipient_type),
                recipient_name=recipient.recipient_name,
                absorbed_rounding=i in absorbed,
            )
            for i, recipient in enumerate(bucket.recipients)
        ]

        return SplitResult(
            payment_id=payment_id,
            amount=amount,
            subject_type=subject_type,
            bucket_category=bucket.category,
            lines=tuple(lines),
            rounding_residual=residual,
        )


_calculator = RevenueSplitCalculator()


def compute_split(
    payment: PaymentSnapshot,
    config: RevenueSplitConfiguration,
) -> SplitResult:
    """Compute the split for a payment snapshot."""
    return _calculator.compute(
        payment_id=payment.payment_id,
        amount=payment.amount,
        subject_type=payment.subject_type.value,
        category=payment.subject_category,
        recipients=payment.recipients,
        config=config,
    )
