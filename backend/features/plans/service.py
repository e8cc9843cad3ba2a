"""
backend/features/plans/service.py

Global plan configuration store.

Handles:
- Reading the administrator catalog override (singleton row id=1)
- Whole-catalog replacement by an administrator (audited)
- Falling back to DEFAULT_CATALOG for user-facing decisions
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, insert, update
from sqlalchemy.exc import SQLAlchemyError

from backend.core.admin_auth import AdminActor
from backend.core.database import get_db_session, plan_catalog
from backend.core.errors import ConfigUnavailableError, NoAdminPrincipalError, ValidationError
from backend.features.audit.service import record_admin_audit
from backend.features.plans.catalog import DEFAULT_CATALOG, PLAN_KEYS
from backend.models.plan import PlanCatalog, PlanCatalogUpdate

logger = logging.getLogger("confera")

CATALOG_ROW_ID = 1
TRIAL_FIELDS = ("trial_duration_days", "trial_charge_enabled", "trial_charge_amount")


def _merge_over_defaults(blob: Any) -> PlanCatalog:
    """Overlay a stored blob on the defaults, plan by plan.

    A blob that is not a mapping with all three plans, or that fails
    validation after merging, yields the default catalog.
    """
    if not isinstance(blob, dict) or not all(key in blob for key in PLAN_KEYS):
        logger.warning("[plans] stored catalog malformed, using defaults")
        return DEFAULT_CATALOG

    merged: Dict[str, Dict[str, Any]] = {}
    for key in PLAN_KEYS:
        base = getattr(DEFAULT_CATALOG, key).model_dump()
        override = blob[key] if isinstance(blob[key], dict) else {}
        merged[key] = {**base, **override}

    try:
        return PlanCatalog.model_validate(merged)
    except PydanticValidationError as e:
        logger.warning("[plans] stored catalog invalid, using defaults", extra={"error": str(e.errors()[0]["msg"])})
        return DEFAULT_CATALOG


def get_catalog() -> PlanCatalog:
    """
    Return the stored catalog override, or the defaults when none exists.

    Raises:
        ConfigUnavailableError: the store could not be read
    """
    try:
        with get_db_session() as session:
            row = session.execute(
                select(plan_catalog.c.catalog).where(plan_catalog.c.id == CATALOG_ROW_ID)
            ).first()
    except SQLAlchemyError as e:
        raise ConfigUnavailableError(f"Plan catalog unavailable: {e.__class__.__name__}") from e

    if row is None:
        return DEFAULT_CATALOG
    return _merge_over_defaults(row.catalog)


def resolve_catalog() -> PlanCatalog:
    """Catalog for user-facing decisions; never fails."""
    try:
        return get_catalog()
    except ConfigUnavailableError as e:
        logger.warning("[plans] catalog store unreachable, using defaults", extra={"error": e.message})
        return DEFAULT_CATALOG


def set_catalog(
    update_payload: Union[PlanCatalogUpdate, Dict[str, Any]],
    actor: Optional[AdminActor],
) -> PlanCatalog:
    """
    Replace the whole catalog.

    Omitted pro trial fields keep their previously stored values (or the
    defaults when nothing was stored).

    Raises:
        NoAdminPrincipalError: actor is missing
        ValidationError: payload is not a valid catalog
        ConfigUnavailableError: the store could not be read or written
    """
    if actor is None:
        raise NoAdminPrincipalError("Updating the plan catalog requires an administrator")

    if isinstance(update_payload, PlanCatalogUpdate):
        payload = update_payload
    else:
        try:
            payload = PlanCatalogUpdate.model_validate(update_payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid plan catalog: {e.errors()[0]['msg']}")

    previous = get_catalog()
    pro = payload.pro.model_dump()
    for field in TRIAL_FIELDS:
        if pro.get(field) is None:
            pro[field] = getattr(previous.pro, field)

    catalog = PlanCatalog(
        free=payload.free.model_dump(),
        pro=pro,
        business=payload.business.model_dump(),
    )
    blob = catalog.model_dump(mode="json")
    now = datetime.now(timezone.utc)

    try:
        with get_db_session() as session:
            existing = session.execute(
                select(plan_catalog.c.id).where(plan_catalog.c.id == CATALOG_ROW_ID)
            ).first()
            if existing:
                session.execute(
                    update(plan_catalog)
                    .where(plan_catalog.c.id == CATALOG_ROW_ID)
                    .values(catalog=blob, updated_by=actor.actor_id, updated_at=now)
                )
            else:
                session.execute(
                    insert(plan_catalog).values(
                        id=CATALOG_ROW_ID, catalog=blob, updated_by=actor.actor_id, updated_at=now
                    )
                )
            record_admin_audit(actor, "set_catalog", target_resource="plan_catalog", payload=blob, session=session)
    except SQLAlchemyError as e:
        raise ConfigUnavailableError(f"Plan catalog could not be saved: {e.__class__.__name__}") from e

    logger.info("[plans] catalog replaced", extra={"actor_id": actor.actor_id})
    return catalog
