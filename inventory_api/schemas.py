"""Request bodies and response shaping for the HTTP surface."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from inventory_jobs.types import LaunchResult
from inventory_kernel.domain.types import LowStockProduct, ProductStats


class ValidateRequest(BaseModel):
    configId: str

    @field_validator("configId")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("configId is required")
        return v


class RestockRequest(ValidateRequest):
    targetCount: int = Field(default=100, ge=1)


def stats_payload(stats: ProductStats) -> dict[str, Any]:
    return {
        "productId": stats.product_id,
        "totalItems": stats.total_items,
        "availableItems": stats.available_items,
        "reservedItems": stats.reserved_items,
        "soldItems": stats.sold_items,
        "validItems": stats.valid_items,
        "invalidItems": stats.invalid_items,
        "uncheckedItems": stats.unchecked_items,
        "lastUpdated": stats.last_updated.isoformat() if stats.last_updated else None,
    }


def low_stock_payload(products: list[LowStockProduct], threshold: int) -> dict[str, Any]:
    return {
        "threshold": threshold,
        "count": len(products),
        "products": [
            {"productId": p.product_id, "availableItems": p.available_items}
            for p in products
        ],
    }


def launch_payload(result: LaunchResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "productId": result.product_id,
        "jobType": result.job_type,
        "message": result.message,
        "jobId": result.job_id,
        "targetCount": result.target_count,
    }
