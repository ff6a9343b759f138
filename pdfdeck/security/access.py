"""
Sessions and the allow-list / admin policy.

Every server route goes through one AccessPolicy; nothing the client sends
about its own role is trusted.
"""

import os
from typing import Callable, Iterable, Optional, Protocol, Set

from pydantic import BaseModel

from pdfdeck.errors import AccessDeniedError


class Session(BaseModel):
    """An authenticated caller."""

    user_id: str
    email: Optional[str] = None


class IdentityProvider(Protocol):
    def get_session(self) -> Optional[Session]:
        ...


def _normalize(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AccessPolicy:
    """
    Who may register and who may administer the allow-list.

    Admins come from ADMIN_EMAIL (comma-separated). Everyone else must be on
    the allow-list, which is looked up fresh on every check.
    """

    def __init__(
        self,
        admin_emails: Iterable[str] = (),
        is_allowed: Optional[Callable[[str], bool]] = None,
    ):
        self.admin_emails: Set[str] = {_normalize(e) for e in admin_emails if _normalize(e)}
        self.is_allowed = is_allowed or (lambda email: False)

    @classmethod
    def from_env(cls, is_allowed: Optional[Callable[[str], bool]] = None) -> "AccessPolicy":
        raw = os.getenv("ADMIN_EMAIL", "")
        return cls(admin_emails=raw.split(","), is_allowed=is_allowed)

    def is_admin(self, session: Optional[Session]) -> bool:
        return bool(session and _normalize(session.email) in self.admin_emails)

    def can_register(self, email: Optional[str]) -> bool:
        email = _normalize(email)
        if not email:
            return False
        return email in self.admin_emails or bool(self.is_allowed(email))

    def require_session(self, session: Optional[Session]) -> Session:
        if session is None:
            raise AccessDeniedError("Unauthorized", status_code=401)
        return session

    def require_admin(self, session: Optional[Session]) -> Session:
        session = self.require_session(session)
        if not self.is_admin(session):
            raise AccessDeniedError("Forbidden", status_code=403)
        return session
