"""
Core enums for the Parkzy platform.

These enums describe who is acting on a booking. They are passed
explicitly into every lifecycle operation instead of being read from
request-global state.
"""

from enum import Enum


class CallerRole(str, Enum):
    """
    The mode a caller is acting in.

    A single account can be both a driver and a host; the role says which
    side of the marketplace the current request comes from.
    """

    RENTER = "renter"
    HOST = "host"
    GUEST = "guest"
    SYSTEM = "system"
