"""Caller abstraction passed into every booking lifecycle operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core.enums import CallerRole


@dataclass(frozen=True)
class Caller:
    """The authenticated identity making a request, and the mode it acts in."""

    user_id: Optional[str]
    role: CallerRole
    guest_token: Optional[str] = None

    @property
    def id(self) -> str:
        """Identifier for audit trails."""
        if self.user_id:
            return self.user_id
        if self.role == CallerRole.GUEST:
            return "guest"
        return self.role.value

    @property
    def is_guest(self) -> bool:
        return self.role == CallerRole.GUEST

    @property
    def is_host(self) -> bool:
        return self.role == CallerRole.HOST

    @classmethod
    def renter(cls, user_id: str) -> "Caller":
        return cls(user_id=user_id, role=CallerRole.RENTER)

    @classmethod
    def host(cls, user_id: str) -> "Caller":
        return cls(user_id=user_id, role=CallerRole.HOST)

    @classmethod
    def guest(cls, guest_token: Optional[str] = None) -> "Caller":
        return cls(user_id=None, role=CallerRole.GUEST, guest_token=guest_token)

    @classmethod
    def system(cls) -> "Caller":
        return cls(user_id=None, role=CallerRole.SYSTEM)
