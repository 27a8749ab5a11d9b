"""
Inventory settings schema.

Frozen dataclasses produced by ``inventory_config.loader`` from the YAML
source plus environment overrides.  Every consumer receives these objects;
nothing else reads files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///inventory.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class JobServiceSettings:
    """Connection settings for the external job service."""

    base_url: str = "http://localhost:8080/api"
    api_key: str = ""
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class WebhookSettings:
    """Webhook endpoint settings.

    An empty ``secret`` disables signature verification (every signature is
    accepted and a warning is logged per request).
    """

    secret: str = ""
    signature_header: str = "X-Webhook-Signature"
    process_inline: bool = True


# ---------------------------------------------------------------------------
# Behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerSettings:
    stock_threshold: int = 10
    stock_interval_seconds: float = 3600.0
    drain_interval_seconds: float = 300.0
    drain_batch_size: int = 100
    validation_interval_seconds: float = 86400.0
    restock_baseline: int = 100


@dataclass(frozen=True)
class LedgerSettings:
    valid_score_threshold: float = 0.8


@dataclass(frozen=True)
class ProductProfile:
    """Job-service configuration ids for one product.

    ``collection_config_id`` drives restocking; ``validation_config_id``
    drives the validation sweep, which also requires ``active``.
    """

    product_id: str
    collection_config_id: str | None = None
    validation_config_id: str | None = None
    active: bool = True


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventorySettings:
    """Complete runtime configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    job_service: JobServiceSettings = field(default_factory=JobServiceSettings)
    webhook: WebhookSettings = field(default_factory=WebhookSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    products: tuple[ProductProfile, ...] = ()
    checksum: str = ""

    def profile_for(self, product_id: str) -> ProductProfile | None:
        for profile in self.products:
            if profile.product_id == product_id:
                return profile
        return None

    def collection_profiles(self) -> dict[str, str]:
        """productId -> collection config id, for products that have one."""
        return {
            p.product_id: p.collection_config_id
            for p in self.products
            if p.collection_config_id
        }

    def validation_profiles(self) -> dict[str, str]:
        """productId -> validation config id, for active products that have one."""
        return {
            p.product_id: p.validation_config_id
            for p in self.products
            if p.active and p.validation_config_id
        }
