"""
Settings loader (``inventory_config.loader``).

Responsibility
--------------
Loads the YAML settings file, applies environment overrides for deployment
secrets, and parses the result into the frozen ``inventory_config.schema``
dataclasses.  Runtime callers go through ``inventory_config.get_settings()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values (non-positive intervals, a score threshold outside
  (0, 1], duplicate product ids) raise ``ValueError``; unknown top-level
  sections raise ``ValueError`` too, so typos never pass silently.
* ``compute_checksum`` hashes the effective settings with secrets redacted.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``product_id`` in a product entry  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import copy
import hashlib
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from inventory_config.schema import (
    DatabaseSettings,
    InventorySettings,
    JobServiceSettings,
    LedgerSettings,
    ProductProfile,
    SchedulerSettings,
    WebhookSettings,
)

_SECTIONS = frozenset({"database", "job_service", "webhook", "scheduler", "ledger", "products"})

# environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "INVENTORY_DATABASE_URL": ("database", "url"),
    "JOB_SERVICE_URL": ("job_service", "base_url"),
    "JOB_SERVICE_API_KEY": ("job_service", "api_key"),
    "WEBHOOK_SECRET": ("webhook", "secret"),
}

_SECRET_KEYS = frozenset({("job_service", "api_key"), ("webhook", "secret")})

DEFAULT_SETTINGS_FILE = Path(__file__).parent / "defaults" / "inventory.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping, got {type(data).__name__}")
    return data


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of ``data`` with non-empty environment overrides applied."""
    merged = copy.deepcopy(data)
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            merged.setdefault(section, {})
            merged[section][key] = value
    return merged


def _positive(value: Any, name: str) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return number


def _positive_int(value: Any, name: str) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return number


def _optional_str(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=str(data.get("url", defaults.url)),
        echo=_as_bool(data.get("echo", defaults.echo)),
        pool_size=_positive_int(data.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=_positive_int(data.get("pool_timeout", defaults.pool_timeout), "database.pool_timeout"),
    )


def parse_job_service(data: dict[str, Any]) -> JobServiceSettings:
    defaults = JobServiceSettings()
    return JobServiceSettings(
        base_url=str(data.get("base_url", defaults.base_url)).rstrip("/"),
        api_key=str(data.get("api_key") or ""),
        timeout_seconds=_positive(
            data.get("timeout_seconds", defaults.timeout_seconds),
            "job_service.timeout_seconds",
        ),
    )


def parse_webhook(data: dict[str, Any]) -> WebhookSettings:
    defaults = WebhookSettings()
    return WebhookSettings(
        secret=str(data.get("secret") or ""),
        signature_header=str(data.get("signature_header", defaults.signature_header)),
        process_inline=_as_bool(data.get("process_inline", defaults.process_inline)),
    )


def parse_scheduler(data: dict[str, Any]) -> SchedulerSettings:
    defaults = SchedulerSettings()
    return SchedulerSettings(
        stock_threshold=_positive_int(
            data.get("stock_threshold", defaults.stock_threshold), "scheduler.stock_threshold",
        ),
        stock_interval_seconds=_positive(
            data.get("stock_interval_seconds", defaults.stock_interval_seconds),
            "scheduler.stock_interval_seconds",
        ),
        drain_interval_seconds=_positive(
            data.get("drain_interval_seconds", defaults.drain_interval_seconds),
            "scheduler.drain_interval_seconds",
        ),
        drain_batch_size=_positive_int(
            data.get("drain_batch_size", defaults.drain_batch_size), "scheduler.drain_batch_size",
        ),
        validation_interval_seconds=_positive(
            data.get("validation_interval_seconds", defaults.validation_interval_seconds),
            "scheduler.validation_interval_seconds",
        ),
        restock_baseline=_positive_int(
            data.get("restock_baseline", defaults.restock_baseline), "scheduler.restock_baseline",
        ),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    threshold = float(data.get("valid_score_threshold", LedgerSettings().valid_score_threshold))
    if not 0 < threshold <= 1:
        raise ValueError(
            f"ledger.valid_score_threshold must be in (0, 1], got {threshold!r}"
        )
    return LedgerSettings(valid_score_threshold=threshold)


def parse_product(data: dict[str, Any]) -> ProductProfile:
    """Parse one product profile.  ``product_id`` is required."""
    return ProductProfile(
        product_id=str(data["product_id"]),
        collection_config_id=_optional_str(data.get("collection_config_id")),
        validation_config_id=_optional_str(data.get("validation_config_id")),
        active=_as_bool(data.get("active", True)),
    )


def parse_products(items: list[dict[str, Any]] | None) -> tuple[ProductProfile, ...]:
    profiles = tuple(parse_product(item) for item in items or ())
    seen: set[str] = set()
    for profile in profiles:
        if profile.product_id in seen:
            raise ValueError(f"Duplicate product profile: {profile.product_id}")
        seen.add(profile.product_id)
    return profiles


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form with secrets redacted."""
    redacted = copy.deepcopy(data)
    for section, key in _SECRET_KEYS:
        if isinstance(redacted.get(section), dict) and redacted[section].get(key):
            redacted[section][key] = "<redacted>"
    canonical = json.dumps(redacted, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any]) -> InventorySettings:
    unknown = set(data) - _SECTIONS
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    return InventorySettings(
        database=parse_database(data.get("database") or {}),
        job_service=parse_job_service(data.get("job_service") or {}),
        webhook=parse_webhook(data.get("webhook") or {}),
        scheduler=parse_scheduler(data.get("scheduler") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
        products=parse_products(data.get("products")),
        checksum=compute_checksum(data),
    )


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """
    Load settings from ``path`` (or ``$INVENTORY_CONFIG``) plus overrides.

    With neither a path nor ``$INVENTORY_CONFIG`` the built-in defaults
    file is used.
    """
    env = os.environ if environ is None else environ
    if path is None:
        configured = env.get("INVENTORY_CONFIG")
        path = Path(configured) if configured else DEFAULT_SETTINGS_FILE
    data = load_yaml_file(Path(path))
    return parse_settings(apply_env_overrides(data, env))


