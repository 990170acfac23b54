# backend/parkzy/services/config_service.py
"""Platform configuration: the versioned fee policy."""

from datetime import datetime
import logging
from typing import Any, Mapping, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..constants.pricing_defaults import FEE_POLICY_CONFIG_KEY, FEE_POLICY_DEFAULTS
from ..core.exceptions import ValidationException
from ..core.timezone_utils import utc_now
from ..repositories.factory import RepositoryFactory
from ..schemas.fee_policy import FeePolicy, FeePolicyRates
from .base import BaseService

logger = logging.getLogger(__name__)

DEFAULT_FEE_POLICY = FeePolicy(**FEE_POLICY_DEFAULTS)


class ConfigService(BaseService):
    def __init__(self, db: Session) -> None:
        super().__init__(db)
        self.repository = RepositoryFactory.create_platform_config_repository(db)

    def get_fee_policy(self) -> FeePolicy:
        policy, _ = self.get_fee_policy_with_timestamp()
        return policy

    def get_fee_policy_with_timestamp(self) -> Tuple[FeePolicy, Optional[datetime]]:
        record = self.repository.get_by_key(FEE_POLICY_CONFIG_KEY)
        if record is None or not record.value_json:
            return DEFAULT_FEE_POLICY.model_copy(), None
        return FeePolicy(**record.value_json), record.updated_at

    @BaseService.measure_operation("set_fee_policy")
    def set_fee_policy(self, payload: Mapping[str, Any]) -> FeePolicy:
        """
        Store new fee rates under the next version number.

        Existing bookings keep the fees they were priced with; only bookings
        and extensions priced after this call see the new rates.
        """
        try:
            rates = FeePolicyRates(**payload)
        except ValidationError as exc:
            raise ValidationException(
                "Invalid fee policy",
                code="INVALID_FEE_POLICY",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            )
        with self.transaction():
            current = self.get_fee_policy()
            policy = FeePolicy(version=current.version + 1, **rates.model_dump())
            self.repository.put(FEE_POLICY_CONFIG_KEY, policy.model_dump(), utc_now())
        logger.info(
            "Fee policy updated",
            extra={"version": policy.version, **rates.model_dump()},
        )
        return policy
