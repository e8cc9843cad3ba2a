"""
Plan catalog API routes.

- GET /api/plans/catalog: current catalog (defaults when none stored)
- PUT /api/admin/plans/catalog: whole-catalog replace (admin only)
"""
from fastapi import APIRouter, Depends

from backend.core.admin_auth import AdminActor, require_admin
from backend.features.plans.service import get_catalog, resolve_catalog, set_catalog
from backend.models.plan import PlanCatalog, PlanCatalogUpdate


router = APIRouter(tags=["plans"])


@router.get("/plans/catalog", response_model=PlanCatalog)
def read_catalog():
    """Public catalog for pricing pages; falls back to defaults if the store is down."""
    return resolve_catalog()


@router.get("/admin/plans/catalog", response_model=PlanCatalog)
def read_catalog_admin(actor: AdminActor = Depends(require_admin)):
    """Admin view; surfaces ConfigUnavailable (503) instead of hiding it."""
    return get_catalog()


@router.put("/admin/plans/catalog", response_model=PlanCatalog)
def replace_catalog(payload: PlanCatalogUpdate, actor: AdminActor = Depends(require_admin)):
    return set_catalog(payload, actor)
