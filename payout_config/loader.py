"""
Configuration Loader (``payout_config.loader``).

Responsibility
--------------
Loads the YAML fragments of a configuration set and parses them into
the frozen ``payout_config.schema`` types.  Runtime callers go through
``payout_config.get_active_config()``; this module is the tooling
underneath it.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unparseable numbers or UUIDs  -> ``ValueError`` / ``decimal.InvalidOperation``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from payout_config.schema import (
    BatchPolicy,
    PayoutConfiguration,
    RecipientShare,
    RevenueSplitBucket,
    RevenueSplitConfiguration,
)

ROOT_FILE = "root.yaml"
REVENUE_SPLITS_FILE = "revenue_splits.yaml"
BATCH_FILE = "batch.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def _decimal(value: Any) -> Decimal:
    # Floats from YAML go through str() so 0.1 stays 0.1.
    return Decimal(str(value))


def parse_recipient_share(data: dict[str, Any]) -> RecipientShare:
    return RecipientShare(
        recipient_type=data["recipient_type"],
        share=_decimal(data["share"]),
        recipient_name=data.get("name"),
    )


def parse_bucket(data: dict[str, Any]) -> RevenueSplitBucket:
    return RevenueSplitBucket(
        subject_type=data["subject_type"],
        category=str(data.get("category", "*")),
        recipients=tuple(
            parse_recipient_share(r) for r in data.get("recipients", [])
        ),
    )


def parse_revenue_splits(data: dict[str, Any]) -> RevenueSplitConfiguration:
    return RevenueSplitConfiguration(
        buckets=tuple(parse_bucket(b) for b in data.get("buckets", [])),
        currency_places=int(data.get("currency_places", 2)),
    )


def parse_batch_policy(data: dict[str, Any]) -> BatchPolicy:
    defaults = BatchPolicy(actor_id=UUID(int=0))
    return BatchPolicy(
        actor_id=UUID(str(data["actor_id"])),
        pending_window_hours=int(
            data.get("pending_window_hours", defaults.pending_window_hours)
        ),
        max_batch_size=int(data.get("max_batch_size", defaults.max_batch_size)),
        time_budget_seconds=float(
            data.get("time_budget_seconds", defaults.time_budget_seconds)
        ),
        lock_name=str(data.get("lock_name", defaults.lock_name)),
        lock_ttl_seconds=int(data.get("lock_ttl_seconds", defaults.lock_ttl_seconds)),
        approved_status=str(data.get("approved_status", defaults.approved_status)),
        schedule_interval_seconds=int(
            data.get("schedule_interval_seconds", defaults.schedule_interval_seconds)
        ),
    )


def parse_configuration(raw: dict[str, Any]) -> PayoutConfiguration:
    """Parse an assembled raw dict (root + fragments) into a configuration.

    ``raw`` has the keys ``root``, ``revenue_splits`` and ``batch``.
    """
    root = raw.get("root", {})
    return PayoutConfiguration(
        config_id=str(root.get("config_id", "payout-default")),
        version=int(root.get("version", 1)),
        description=root.get("description"),
        revenue_splits=parse_revenue_splits(raw.get("revenue_splits", {})),
        batch=parse_batch_policy(raw["batch"]),
        checksum=compute_checksum(raw),
    )


def load_configuration_set(set_dir: Path) -> PayoutConfiguration:
    """Load ``root.yaml``, ``revenue_splits.yaml`` and ``batch.yaml`` from a set."""
    raw = {
        "root": load_yaml_file(set_dir / ROOT_FILE),
        "revenue_splits": load_yaml_file(set_dir / REVENUE_SPLITS_FILE),
        "batch": load_yaml_file(set_dir / BATCH_FILE),
    }
    return parse_configuration(raw)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
