#!/usr/bin/env python3
"""Apply the Kigali working-hours orders switch once.

Usage (from the repository root, e.g. from cron)::

    python -m scripts.toggle_orders_schedule [--at 2024-05-01T19:45:00+00:00]

Exit codes: 0 applied, 1 missing service key, 2 backend rejected the
update, 3 unexpected error.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from typing import Optional, Sequence

from application.services.orders_schedule import run_scheduled_toggle
from core.config import settings
from core.logging_config import configure_logging, get_logger
from infrastructure.external.api_clients.base import APIError

EXIT_MISSING_KEY = 1
EXIT_BACKEND_FAILURE = 2
EXIT_UNEXPECTED = 3

logger = get_logger(__name__)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--at",
        type=datetime.fromisoformat,
        default=None,
        help="evaluate the schedule at this ISO-8601 instant instead of now",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    service_key = settings.service_key
    if not service_key:
        logger.error("orders_schedule_missing_service_key")
        print("SERVICE_API_KEY or ADMIN_API_KEY must be set", file=sys.stderr)
        return EXIT_MISSING_KEY

    try:
        result = asyncio.run(run_scheduled_toggle(service_key, args.at))
    except APIError as exc:
        logger.error("orders_schedule_backend_failed", status_code=exc.status_code, error=exc.message)
        print(f"Backend rejected the update: {exc.message}", file=sys.stderr)
        return EXIT_BACKEND_FAILURE
    except Exception as exc:
        logger.error("orders_schedule_unexpected_error", error=str(exc), exc_info=True)
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED

    summary = result.summary()
    if result.admin_override:
        print(f"Admin override in place; orders enabled={result.enabled}")
    else:
        print(f"Orders enabled={summary['enabled']} (Kigali {summary['kigaliTime']})")
    return 0


if __name__ == "__main__":
    configure_logging()
    sys.exit(main())
