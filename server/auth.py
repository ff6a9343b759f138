"""
Request identity and access policy dependencies.

Authentication is done by the fronting proxy, which forwards the verified
user in request headers.
"""

from typing import Mapping, Optional

from fastapi import Depends, Request, WebSocket
from sqlalchemy.orm import Session as DBSession

from pdfdeck.security import AccessPolicy, Session
from server.db import get_db
from server.store import AllowListStore


class HeaderIdentity:
    """Reads the session from proxy-set headers."""

    USER_ID_HEADER = "X-Auth-User-Id"
    EMAIL_HEADER = "X-Auth-Email"

    def __init__(self, headers: Mapping[str, str]):
        self.headers = headers

    def get_session(self) -> Optional[Session]:
        user_id = (self.headers.get(self.USER_ID_HEADER) or "").strip()
        if not user_id:
            return None
        email = (self.headers.get(self.EMAIL_HEADER) or "").strip() or None
        return Session(user_id=user_id, email=email)


def current_session(request: Request) -> Optional[Session]:
    return HeaderIdentity(request.headers).get_session()


def websocket_session(websocket: WebSocket) -> Optional[Session]:
    """Same identity headers, read off the WebSocket handshake."""
    return HeaderIdentity(websocket.headers).get_session()


def get_policy(db: DBSession = Depends(get_db)) -> AccessPolicy:
    return AccessPolicy.from_env(is_allowed=AllowListStore(db).contains)
