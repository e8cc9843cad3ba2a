"""
backend/models/call.py

Read-only snapshot of a video call, as the entitlement evaluator needs it.
"""

from typing import FrozenSet

from pydantic import BaseModel, ConfigDict, Field

# Call type whose admission is restricted to listed members
INVITED_CALL_TYPE = "invited"


class CallSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    call_id: str
    call_type: str = "default"
    participant_count: int = Field(default=0, ge=0)
    member_ids: FrozenSet[str] = frozenset()

    @property
    def is_group(self) -> bool:
        """More than two participants; one-on-one calls are at most two."""
        return self.participant_count > 2
