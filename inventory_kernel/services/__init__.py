"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.ledger_service import InventoryLedger

__all__ = [
    "InventoryLedger",
]
