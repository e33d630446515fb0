from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from medequip.services.authorization_service import ADMIN_ROLE, CLINIC_ROLE


CLINIC_LOGIN_PATH = "/login"
ADMIN_LOGIN_PATH = "/admin-login"
HOME_PATH = "/"


@dataclass(frozen=True)
class GuardDecision:
    action: str
    location: str | None = None
    reason: str | None = None

    @property
    def allowed(self) -> bool:
        return self.action == "allow"

    def as_dict(self) -> dict[str, Any]:
        return {"action": self.action, "location": self.location, "reason": self.reason}


LOADING = GuardDecision("loading")
ALLOW = GuardDecision("allow")


def _redirect(location: str, reason: str) -> GuardDecision:
    return GuardDecision("redirect", location, reason)


def clinic_guard(resolver: Any) -> GuardDecision:
    if resolver.loading:
        return LOADING
    if not resolver.user:
        return _redirect(CLINIC_LOGIN_PATH, "not_authenticated")
    if resolver.role != CLINIC_ROLE:
        return _redirect(ADMIN_LOGIN_PATH, "clinic_role_required")
    return ALLOW


def admin_guard(resolver: Any) -> GuardDecision:
    if resolver.loading:
        return LOADING
    if not resolver.user:
        return _redirect(ADMIN_LOGIN_PATH, "not_authenticated")
    if resolver.role != ADMIN_ROLE:
        return _redirect(HOME_PATH, "admin_role_required")
    return ALLOW


def public_route(resolver: Any) -> GuardDecision:
    return ALLOW


GUARDS: dict[str, Callable[[Any], GuardDecision]] = {
    "clinic": clinic_guard,
    "admin": admin_guard,
    "public": public_route,
}
