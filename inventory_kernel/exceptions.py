"""
Typed exception hierarchy for the inventory kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the webhook dispatcher, the scheduler, the admin routes) decide what
to do with a failure by its TYPE, never by parsing its message:

    try:
        ledger.reserve_items("p1", "o1", 5)
    except InsufficientStockError as e:
        respond(409, code=e.code, available=e.available)

Every exception has:
  1. a CODE attribute (machine-readable, API-safe, stable across releases);
  2. structured fields (product_id, order_id, status_code, ...), which
     ``StructuredFormatter`` copies into the log line as ``exc_<field>``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- StorageError
    +-- InsufficientStockError
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- OrderNotFoundError
    |   +-- WebhookEventNotFoundError
    +-- AlreadyAppliedError
    +-- JobServiceError
    +-- SignatureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|---------------------------------------------------
STORAGE_ERROR            | Transaction or connectivity failure (rolled back)
INSUFFICIENT_STOCK       | Reservation asks for more than is available
ITEM_NOT_FOUND           | Validity check targets a missing item
ORDER_NOT_FOUND          | Complete/cancel for an order with nothing reserved
WEBHOOK_EVENT_NOT_FOUND  | Mark/process of an unrecorded webhook event
ALREADY_APPLIED          | External event already applied to the ledger (OK)
JOB_SERVICE_ERROR        | External job service RPC failed or timed out
SIGNATURE_INVALID        | Webhook signature missing or wrong
"""

from typing import Any


class InventoryKernelError(Exception):
    """Base exception for all inventory kernel errors."""

    code: str = "INVENTORY_KERNEL_ERROR"


class StorageError(InventoryKernelError):
    """The store failed; the whole operation was rolled back."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


class InsufficientStockError(InventoryKernelError):
    """Fewer available items than the reservation asked for."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class NotFoundError(InventoryKernelError):
    """Base for operations that target something missing."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Inventory item not found: {item_id}")


class OrderNotFoundError(NotFoundError):
    """No reserved items exist for the order."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"No reserved items found for order {order_id}")


class WebhookEventNotFoundError(NotFoundError):
    code: str = "WEBHOOK_EVENT_NOT_FOUND"

    def __init__(self, event_id: int):
        self.event_id = event_id
        super().__init__(f"Webhook event not found: {event_id}")


class AlreadyAppliedError(InventoryKernelError):
    """
    The external event behind this mutation was already applied.

    This is not a failure from the caller's point of view: the ledger already
    holds the items, so redelivery of the same event is a no-op.
    """

    code: str = "ALREADY_APPLIED"

    def __init__(self, dedup_key: str, items_added: int | None = None):
        self.dedup_key = dedup_key
        self.items_added = items_added
        super().__init__(f"External event already applied: {dedup_key}")


class JobServiceError(InventoryKernelError):
    """The external job service answered non-2xx, timed out, or was unreachable."""

    code: str = "JOB_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        operation: str | None = None,
        upstream: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.operation = operation
        self.upstream = upstream
        prefix = f"{operation}: " if operation else ""
        suffix = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{prefix}{message}{suffix}")


class SignatureError(InventoryKernelError):
    code: str = "SIGNATURE_INVALID"

    def __init__(self, reason: str = "Invalid signature"):
        self.reason = reason
        super().__init__(reason)
