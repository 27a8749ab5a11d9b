"""
inventory_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_settings()`` is the only way components obtain configuration.  No
    other module reads settings files or environment variables.  Returns a
    frozen ``InventorySettings``.

Architecture position:
    Sits beside ``inventory_kernel``: the kernel never imports from here;
    the orchestrator translates settings into constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- schema or value validation failures.

Audit relevance:
    Every ``get_settings()`` call emits an ``INVENTORY_CONFIG_TRACE`` log entry
    with the checksum of the effective (secret-redacted) settings, the
    number of product profiles and whether webhook signing is enabled.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping

from inventory_config.loader import load_settings
from inventory_config.schema import (
    DatabaseSettings,
    InventorySettings,
    JobServiceSettings,
    LedgerSettings,
    ProductProfile,
    SchedulerSettings,
    WebhookSettings,
)

_logger = logging.getLogger("inventory_kernel.config")

__all__ = [
    "DatabaseSettings",
    "InventorySettings",
    "JobServiceSettings",
    "LedgerSettings",
    "ProductProfile",
    "SchedulerSettings",
    "WebhookSettings",
    "get_settings",
]


def get_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Settings YAML.  Defaults to ``$INVENTORY_CONFIG`` or the
            packaged defaults file.
        environ: Environment mapping for overrides (defaults to os.environ).
    """
    settings = load_settings(config_path, environ)

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "checksum": settings.checksum,
            "product_count": len(settings.products),
            "webhook_signing_enabled": bool(settings.webhook.secret),
            "job_service_url": settings.job_service.base_url,
        },
    )
    return settings
