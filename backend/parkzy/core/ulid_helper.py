"""Identifiers: ULID keys for rows and requests, opaque tokens for guests."""

import secrets

import ulid

GUEST_TOKEN_BYTES = 32


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def generate_guest_token() -> str:
    """URL-safe secret handed to a guest once; it is their only proof of ownership."""
    return secrets.token_urlsafe(GUEST_TOKEN_BYTES)
