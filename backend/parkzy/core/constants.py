"""Application-wide constants for the Parkzy platform."""

from __future__ import annotations

BRAND_NAME = "Parkzy"

# API metadata
API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = f"Backend API for {BRAND_NAME} - hourly parking spot bookings"
API_VERSION = "1.0.0"

# Minutes in a day; availability windows are expressed in minutes from midnight
MINUTES_PER_DAY = 1440

# Text constraints
MAX_REASON_LENGTH = 500

HOST_UNAVAILABLE_REASON = "Host marked spot unavailable"
HOST_DECLINED_REASON = "Host declined the booking request"
REQUEST_EXPIRED_REASON = "Booking request expired"
