"""
payout_engines.tracer -- one PAYOUT_ENGINE_TRACE record per engine call.

``@traced_engine`` wraps a keyword-only engine function.  After the call
it emits a DEBUG record with the engine name and version, a fingerprint
of the chosen inputs (same inputs, same fingerprint, across processes)
and the duration.  An optional ``describe`` callable adds fields taken
from the result, e.g. the rounding residual of a split.

The engine layer stays free of kernel imports, so the logger is looked
up by name; it sits under ``payout`` and inherits its handler.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import time
from collections.abc import Callable
from typing import Any

TRACE_MESSAGE = "PAYOUT_ENGINE_TRACE"

_logger = logging.getLogger("payout.engines.tracer")


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over the named kwargs.

    Absent fields hash as null.  Decimals and UUIDs hash by their string
    form, so ``Decimal("10.00")`` and ``Decimal("10.0")`` differ.
    """
    selected = {name: kwargs.get(name) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    describe: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            if _logger.isEnabledFor(logging.DEBUG):
                fields: dict[str, Any] = {
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": compute_input_fingerprint(
                        fingerprint_fields, kwargs
                    ),
                    "duration_ms": elapsed_ms,
                }
                if describe is not None:
                    fields.update(describe(result))
                _logger.debug(TRACE_MESSAGE, extra=fields)
            return result

        return wrapper

    return decorator
