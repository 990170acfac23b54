"""Pydantic schemas for the versioned fee policy."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, PositiveInt


class FeePolicyRates(BaseModel):
    renter_service_fee_pct: float = Field(
        ..., ge=0, lt=1, description="Fee added to the renter-facing total, as decimal"
    )
    host_platform_fee_pct: float = Field(
        ..., ge=0, lt=1, description="Fee deducted from host earnings, as decimal"
    )


class FeePolicy(FeePolicyRates):
    """Fee percentages in force, with the version stamped onto each booking."""

    version: PositiveInt = Field(..., description="Monotonic policy version")


class FeePolicyResponse(BaseModel):
    policy: FeePolicy
    updated_at: Optional[datetime] = None
