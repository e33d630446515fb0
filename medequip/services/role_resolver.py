from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from medequip.services.authorization_service import Capabilities
from medequip.services.user_access_service import get_session, get_user, remove_session, resolve_role, serialize_user


LOGGER = logging.getLogger("medequip.auth")


class SessionRoleResolver:
    """Resolves a session token into the caller's user and role.

    One resolver is created per request and handed to whatever needs the
    caller's identity. ``loading`` stays true until ``resolve`` has checked the
    session and, when a user exists, looked up the role.
    """

    def __init__(self, db: Session, token: str | None):
        self._db = db
        self._token = token
        self.user: dict[str, Any] | None = None
        self.role: str | None = None
        self.loading = True

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def user_id(self) -> str | None:
        return self.user["id"] if self.user else None

    def resolve(self) -> "SessionRoleResolver":
        session = get_session(self._token)
        user_id = str(session.get("userID") or "") if session else ""
        record = get_user(self._db, user_id) if user_id else None
        if record is None:
            self.user = None
            self.role = None
        else:
            self.user = serialize_user(record)
            self.role = resolve_role(self._db, record.UserID)
            if self.role is None:
                LOGGER.warning("No role resolved for user_id=%s", record.UserID)
        self.loading = False
        return self

    def capabilities(self) -> Capabilities:
        if self.loading:
            return Capabilities(None, None)
        return Capabilities(self.user_id, self.role)

    def sign_out(self) -> None:
        remove_session(self._token)
        self._token = None
        self.user = None
        self.role = None
        self.loading = False

    def snapshot(self) -> dict[str, Any]:
        return {
            "user": dict(self.user) if self.user else None,
            "role": self.role,
            "loading": self.loading,
        }
