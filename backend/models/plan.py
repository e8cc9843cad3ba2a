"""
backend/models/plan.py

Plan catalog models.

A catalog always holds exactly three plans (free, pro, business). Only
`pro` carries trial settings. Catalog updates may omit the pro trial
fields; the config store fills them from the previously stored values.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanName(str, Enum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class PlanLimits(BaseModel):
    """Per-plan limits and feature flags."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    max_duration_minutes: int = Field(ge=0)
    max_participants: int = Field(ge=1)
    recordings_enabled: bool
    streaming_enabled: bool
    # Calls with at most two participants are exempt from duration caps
    unlimited_one_on_one: bool


class ProPlanLimits(PlanLimits):
    trial_duration_days: int = Field(default=14, ge=0)
    trial_charge_enabled: bool = False
    trial_charge_amount: float = Field(default=0, ge=0)  # whole NGN


class PlanCatalog(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    free: PlanLimits
    pro: ProPlanLimits
    business: PlanLimits

    def for_plan(self, plan: PlanName) -> PlanLimits:
        return getattr(self, PlanName(plan).value)


class ProPlanLimitsUpdate(PlanLimits):
    trial_duration_days: Optional[int] = Field(default=None, ge=0)
    trial_charge_enabled: Optional[bool] = None
    trial_charge_amount: Optional[float] = Field(default=None, ge=0)


class PlanCatalogUpdate(BaseModel):
    """Whole-catalog replacement payload written by an administrator."""
    model_config = ConfigDict(extra="forbid")

    free: PlanLimits
    pro: ProPlanLimitsUpdate
    business: PlanLimits
