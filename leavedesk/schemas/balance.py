from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class BalanceResponse(BaseModel):
    id: int
    user_id: int
    activity_type_id: int
    year: int
    total_days: float
    used_days: float
    pending_days: float
    carried_over_days: float
    adjustment_days: float
    available_days: float
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BalanceAdjustment(BaseModel):
    activity_type_id: int
    year: int = Field(..., ge=2000, le=2100)
    days: float = Field(..., description="Positive to grant, negative to withdraw")
    reason: str = Field(..., min_length=1, max_length=500)


class CarryOverRequest(BaseModel):
    from_year: int = Field(..., ge=2000, le=2100)
    user_id: Optional[int] = Field(None, description="Omit to run for every user holding balances")


class CarryOverResult(BaseModel):
    from_year: int
    to_year: int
    balances_updated: int
