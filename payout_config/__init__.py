"""
payout_config -- single public entrypoint for payout configuration.

Responsibility:
    ``get_active_config()`` is the only way the batch engine obtains its
    revenue split table and batch limits.  The returned
    ``PayoutConfiguration`` is frozen and validated; it is loaded once
    at process start and injected into the processor.

Architecture position:
    Sits above ``payout_kernel`` and below ``payout_batch``.  The kernel
    and the engines never import from ``payout_config``.

Failure modes:
    - ``FileNotFoundError`` -- configuration set directory or fragment missing.
    - ``InvalidConfigurationError`` -- validation failed; carries every error.
"""

from __future__ import annotations

from pathlib import Path

from payout_config.loader import load_configuration_set
from payout_config.schema import (
    BatchPolicy,
    PayoutConfiguration,
    RecipientShare,
    RevenueSplitBucket,
    RevenueSplitConfiguration,
)
from payout_config.validator import validate_configuration
from payout_kernel.exceptions import InvalidConfigurationError
from payout_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"

__all__ = [
    "BatchPolicy",
    "PayoutConfiguration",
    "RecipientShare",
    "RevenueSplitBucket",
    "RevenueSplitConfiguration",
    "get_active_config",
]


def get_active_config(config_dir: Path | str | None = None) -> PayoutConfiguration:
    """Load, validate and return the payout configuration.

    Args:
        config_dir: Configuration set directory holding ``root.yaml``,
            ``revenue_splits.yaml`` and ``batch.yaml``.  Defaults to
            payout_config/sets/default/.

    Raises:
        FileNotFoundError: If the directory or a fragment is missing.
        InvalidConfigurationError: If validation fails.
    """
    set_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not set_dir.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {set_dir}")

    config = load_configuration_set(set_dir)

    validation = validate_configuration(config)
    for warning in validation.warnings:
        logger.warning("payout_config_warning", extra={"detail": warning})
    if not validation.is_valid:
        raise InvalidConfigurationError(validation.errors)

    logger.info(
        "payout_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "bucket_count": len(config.revenue_splits.buckets),
            "approved_status": config.batch.approved_status,
        },
    )
    return config
