"""
Inventory Kernel

Transactional store of consumable content items, grouped by product:
- FIFO reservation with locking reads
- Order completion and cancellation
- Append-only validity audit trail
- Per-product stats kept consistent with item state
"""

__version__ = "0.1.0"
