"""
backend/features/plans/catalog.py

Default plan catalog, used whenever no administrator override is stored.
"""

from backend.models.plan import PlanCatalog, PlanLimits, ProPlanLimits


DEFAULT_CATALOG = PlanCatalog(
    free=PlanLimits(
        max_duration_minutes=40,
        max_participants=100,
        recordings_enabled=False,
        streaming_enabled=False,
        unlimited_one_on_one=True,
    ),
    pro=ProPlanLimits(
        max_duration_minutes=1440,
        max_participants=300,
        recordings_enabled=True,
        streaming_enabled=True,
        unlimited_one_on_one=True,
        trial_duration_days=14,
        trial_charge_enabled=False,
        trial_charge_amount=0,
    ),
    business=PlanLimits(
        max_duration_minutes=1440,
        max_participants=1000,
        recordings_enabled=True,
        streaming_enabled=True,
        unlimited_one_on_one=True,
    ),
)

PLAN_KEYS = ("free", "pro", "business")
