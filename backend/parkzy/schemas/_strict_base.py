"""Schema baselines: strict requests, attribute-readable responses."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Response DTO base; forbids extras and can be built from ORM objects."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that rejects unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)
