"""
Availability quick actions - API v1

POST /availability/block   block spots for a date (two-step when bookings are affected)
POST /availability/open    make spots available for a whole date
"""

import logging
from typing import List

from fastapi import APIRouter, Body, Depends

from ...api.dependencies import (
    get_availability_block_service,
    get_availability_service,
    get_current_caller,
)
from ...core.exceptions import DomainException
from ...principal import Caller
from ...schemas.availability import (
    BlockAvailabilityRequest,
    BlockAvailabilityResult,
    CalendarOverrideResponse,
    OpenAvailabilityRequest,
)
from ...services.availability_block_service import AvailabilityBlockService
from ...services.availability_service import AvailabilityService
from .errors import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["availability"])


@router.post("/block", response_model=BlockAvailabilityResult)
def block_availability(
    payload: BlockAvailabilityRequest = Body(...),
    caller: Caller = Depends(get_current_caller),
    block_service: AvailabilityBlockService = Depends(get_availability_block_service),
) -> BlockAvailabilityResult:
    """
    Block spots for a date.

    Without ``confirm`` and with bookings in the way, nothing changes and the
    response lists the live and upcoming bookings for the host to review.
    """
    try:
        return block_service.block_availability(
            caller,
            payload.spot_ids,
            payload.target_date,
            start_time=payload.start_time,
            reason=payload.reason,
            confirm=payload.confirm,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/open", response_model=List[CalendarOverrideResponse])
def open_availability(
    payload: OpenAvailabilityRequest = Body(...),
    caller: Caller = Depends(get_current_caller),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[CalendarOverrideResponse]:
    try:
        overrides = availability_service.open_availability(
            caller, payload.spot_ids, payload.target_date
        )
        return [CalendarOverrideResponse.model_validate(o) for o in overrides]
    except DomainException as e:
        handle_domain_exception(e)
