"""Spot availability rules - API v1."""

from typing import List

from fastapi import APIRouter, Body, Depends, Path

from ...api.dependencies import get_availability_service, get_current_caller
from ...core.exceptions import DomainException
from ...principal import Caller
from ...schemas.availability import AvailabilityRuleResponse, WeeklyScheduleRequest
from ...services.availability_service import AvailabilityService
from .errors import ULID_PATH_PATTERN, handle_domain_exception

router = APIRouter(prefix="/spots", tags=["spots"])


@router.put("/{spot_id}/availability/rules", response_model=List[AvailabilityRuleResponse])
def replace_weekly_schedule(
    spot_id: str = Path(..., description="Spot ULID", pattern=ULID_PATH_PATTERN),
    payload: WeeklyScheduleRequest = Body(...),
    caller: Caller = Depends(get_current_caller),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityRuleResponse]:
    """Replace the spot's weekly schedule (one rule per weekday)."""
    try:
        rules = availability_service.replace_weekly_schedule(
            caller, spot_id, [rule.model_dump() for rule in payload.rules]
        )
        return [AvailabilityRuleResponse.model_validate(rule) for rule in rules]
    except DomainException as e:
        handle_domain_exception(e)
