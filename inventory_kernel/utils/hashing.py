"""
Content hashing for webhook payloads.

Hits that arrive without an upstream id are deduplicated on a digest of
their JSON body.  Keys are sorted before hashing so the same hit delivered
with a different key order maps to the same dedup key.
"""

import hashlib
import json
from typing import Any


def hash_payload(payload: Any) -> str:
    """Hex SHA-256 of ``payload`` in sorted-key, whitespace-free JSON."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
