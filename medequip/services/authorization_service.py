from __future__ import annotations

from typing import Any


CLINIC_ROLE = "clinic"
ADMIN_ROLE = "admin"
KNOWN_ROLES = (CLINIC_ROLE, ADMIN_ROLE)

NO_RIGHTS = {
    "browseCatalog": False,
    "requestRental": False,
    "purchase": False,
    "manageInventory": False,
    "approveRental": False,
    "updateRentalStatus": False,
    "viewAllBookings": False,
}

RIGHTS_BY_ROLE = {
    ADMIN_ROLE: {
        **NO_RIGHTS,
        "browseCatalog": True,
        "manageInventory": True,
        "approveRental": True,
        "updateRentalStatus": True,
        "viewAllBookings": True,
    },
    CLINIC_ROLE: {
        **NO_RIGHTS,
        "browseCatalog": True,
        "requestRental": True,
        "purchase": True,
    },
}


class AuthorizationError(PermissionError):
    pass


def normalize_role(raw_role: Any) -> str | None:
    role = str(raw_role or "").strip().lower()
    if role in KNOWN_ROLES:
        return role
    return None


class Capabilities:
    """Capability queries for one resolved caller.

    Service functions call ``require`` before mutating anything, so the check
    holds whether or not the HTTP layer already gated the route.
    """

    def __init__(self, user_id: str | None, role: str | None):
        self.user_id = user_id
        self.role = normalize_role(role) if user_id else None
        self.rights = dict(RIGHTS_BY_ROLE.get(self.role or "", NO_RIGHTS))

    def can(self, right: str) -> bool:
        return bool(self.rights.get(right))

    def can_browse_catalog(self) -> bool:
        return self.can("browseCatalog")

    def can_request_rental(self) -> bool:
        return self.can("requestRental")

    def can_purchase(self) -> bool:
        return self.can("purchase")

    def can_manage_inventory(self) -> bool:
        return self.can("manageInventory")

    def can_approve_rental(self) -> bool:
        return self.can("approveRental")

    def can_update_rental_status(self) -> bool:
        return self.can("updateRentalStatus")

    def can_view_all_bookings(self) -> bool:
        return self.can("viewAllBookings")

    def require(self, right: str, message: str | None = None) -> None:
        if not self.can(right):
            raise AuthorizationError(message or f"Not permitted: {right}.")

    def as_dict(self) -> dict[str, bool]:
        return dict(self.rights)
