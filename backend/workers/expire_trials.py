"""
Optional sweep that marks lapsed trials inactive.

Entitlement decisions already ignore trials past their end time, so this
job only tidies stored metadata (dashboards, exports). Dry-run by default.
"""
from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Optional

from backend.core.errors import AppError
from backend.core.logging import configure_logging
from backend.features.identity.service import get_identity_provider, write_metadata
from backend.models.entitlement import UserEntitlement

logger = logging.getLogger("confera")


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def expire_trials(*, dry_run: bool = True, now: Optional[datetime] = None) -> Dict:
    current = now or datetime.now(timezone.utc)
    results = {"candidates": 0, "expired": 0, "failed": 0, "dry_run": dry_run}

    for principal in get_identity_provider().list_users():
        try:
            entitlement = UserEntitlement.from_metadata(principal.user_id, principal.metadata)
        except AppError as e:
            logger.warning("[trials] sweep skipped user", extra={"user_id": principal.user_id, "error": e.message})
            results["failed"] += 1
            continue

        trial = entitlement.trial
        if trial is None or not trial.active or trial.is_current(current):
            continue

        results["candidates"] += 1
        if dry_run:
            continue
        try:
            write_metadata(principal.user_id, trial.model_copy(update={"active": False}).to_metadata())
            results["expired"] += 1
        except AppError as e:
            logger.warning("[trials] sweep write failed", extra={"user_id": principal.user_id, "error": e.message})
            results["failed"] += 1

    logger.info("[trials] expiry sweep", extra=results)
    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Mark lapsed trials inactive in user metadata.")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Only count lapsed trials.")
    parser.add_argument("--live", dest="dry_run", action="store_false", help="Write trial_active=false.")
    parser.set_defaults(dry_run=_parse_bool(os.getenv("CONFERA_TRIAL_SWEEP_DRY_RUN", "1"), True))
    args = parser.parse_args()

    configure_logging(os.getenv("ENV", "development"))
    result = expire_trials(dry_run=args.dry_run)
    print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
