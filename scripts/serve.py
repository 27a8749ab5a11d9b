#!/usr/bin/env python3
"""
Serve the webhook endpoint and admin routes with uvicorn.

Usage:
  python3 scripts/serve.py [--config PATH] [--host HOST] [--port PORT]
                           [--create-tables] [--no-scheduler]

Configuration comes from inventory_config (YAML plus INVENTORY_DATABASE_URL,
JOB_SERVICE_URL, JOB_SERVICE_API_KEY, WEBHOOK_SECRET).  The admin routes are
served without a guard; put an authenticating proxy in front of them or
build the app with ``create_app(..., admin_guard=...)``.
"""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the inventory pipeline HTTP service")
    p.add_argument("--config", default=None, help="Settings YAML (default: INVENTORY_CONFIG or bundled defaults)")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--create-tables", action="store_true", help="Create missing tables before serving")
    p.add_argument("--no-scheduler", action="store_true", help="Do not start the automation tasks")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    import uvicorn

    from inventory_api import create_app
    from inventory_automation import InventoryOrchestrator
    from inventory_config import get_settings
    from inventory_kernel.db.engine import create_tables
    from inventory_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level))

    try:
        settings = get_settings(args.config)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    orchestrator = InventoryOrchestrator.from_settings(settings)
    if args.create_tables:
        create_tables(orchestrator.engine)

    app = create_app(orchestrator, start_scheduler=not args.no_scheduler)
    try:
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    finally:
        orchestrator.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
