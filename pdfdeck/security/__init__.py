"""Credential encryption and access control."""

from pdfdeck.security.access import AccessPolicy, IdentityProvider, Session
from pdfdeck.security.credentials import decrypt, derive_key, encrypt

__all__ = [
    "AccessPolicy",
    "IdentityProvider",
    "Session",
    "decrypt",
    "derive_key",
    "encrypt",
]
