"""Default fee policy values used until a policy is written to platform config."""

from __future__ import annotations

from typing import Any, Dict

FEE_POLICY_CONFIG_KEY = "fees"

FEE_POLICY_DEFAULTS: Dict[str, Any] = {
    "version": 1,
    "renter_service_fee_pct": 0.10,
    "host_platform_fee_pct": 0.10,
}
