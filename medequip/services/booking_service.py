from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medequip.models.store_models import Rental, RentalRequest
from medequip.schemas.machines import MachineRecord
from medequip.services.authorization_service import Capabilities
from medequip.services.pricing_service import calculate_rental_price, is_valid_duration


REQUEST_STATES = {"pending", "approved", "rejected"}
REQUEST_TRANSITIONS = {
    "pending": {"approved", "rejected"},
    "approved": set(),
    "rejected": set(),
}
RENTAL_STATES = {"ongoing", "completed", "returned"}
RENTAL_TRANSITIONS = {
    "ongoing": {"completed", "returned"},
    "completed": set(),
    "returned": set(),
}

LOGGER = logging.getLogger("medequip.bookings")


class BookingValidationError(ValueError):
    pass


class BookingStateError(ValueError):
    pass


class BookingNotFoundError(LookupError):
    pass


def request_state(rental_request: RentalRequest) -> str:
    if rental_request.RentalID is not None:
        return "rented"
    return rental_request.AdminStatus or "pending"


def serialize_rental_request(rental_request: RentalRequest) -> dict:
    return {
        "id": rental_request.RequestID,
        "userID": rental_request.UserID,
        "machineID": rental_request.MachineID,
        "machineName": rental_request.MachineName,
        "userName": rental_request.RequesterName,
        "phone": rental_request.Phone,
        "location": rental_request.Location,
        "rentalDuration": rental_request.RentalDuration,
        "totalPrice": float(rental_request.TotalPrice or 0),
        "adminStatus": rental_request.AdminStatus,
        "state": request_state(rental_request),
        "decisionReason": rental_request.DecisionReason,
        "decidedBy": rental_request.DecidedBy,
        "decisionDate": rental_request.DecisionDate,
        "rentalID": rental_request.RentalID,
        "createdDate": rental_request.CreatedDate,
    }


def serialize_rental(rental: Rental) -> dict:
    return {
        "id": rental.RentalID,
        "userID": rental.UserID,
        "machineID": rental.MachineID,
        "machineName": rental.MachineName,
        "requestID": rental.RequestID,
        "rentalDuration": rental.RentalDuration,
        "totalPrice": float(rental.TotalPrice or 0),
        "status": rental.Status,
        "startDate": rental.StartDate,
        "createdDate": rental.CreatedDate,
        "updatedDate": rental.UpdatedDate,
    }


def _required(value: str | None) -> str:
    return (value or "").strip()


def create_rental_request(
    db: Session,
    capabilities: Capabilities,
    machine: MachineRecord,
    *,
    user_name: str | None,
    phone: str | None,
    location: str | None,
    rental_duration: str | None,
) -> RentalRequest:
    capabilities.require("requestRental", "Only clinic accounts can request rentals.")
    name = _required(user_name)
    phone_value = _required(phone)
    location_value = _required(location)
    duration = _required(rental_duration)
    if not name or not phone_value or not location_value or not duration:
        raise BookingValidationError("Please fill all fields")
    if not is_valid_duration(duration):
        raise BookingValidationError("Rental duration must look like 3-day, 2-week or 1-month.")
    if not machine.availability:
        raise BookingStateError("Machine is currently unavailable.")

    rental_request = RentalRequest(
        UserID=capabilities.user_id,
        MachineID=machine.id,
        MachineName=machine.machineName,
        RequesterName=name,
        Phone=phone_value,
        Location=location_value,
        RentalDuration=duration,
        TotalPrice=calculate_rental_price(duration, machine.rentalPricing),
        AdminStatus="pending",
        CreatedDate=datetime.now(),
    )
    db.add(rental_request)
    db.commit()
    db.refresh(rental_request)
    LOGGER.info(
        "Rental request created id=%s machine=%s user=%s",
        rental_request.RequestID,
        machine.id,
        capabilities.user_id,
    )
    return rental_request


def get_rental_request(db: Session, capabilities: Capabilities, request_id: int) -> RentalRequest:
    rental_request = db.get(RentalRequest, request_id)
    if rental_request is None:
        raise BookingNotFoundError("Rental request not found")
    if rental_request.UserID != capabilities.user_id and not capabilities.can_view_all_bookings():
        raise BookingNotFoundError("Rental request not found")
    return rental_request


def list_rental_requests(db: Session, capabilities: Capabilities, status: str | None = None) -> list[RentalRequest]:
    stmt = select(RentalRequest)
    if not capabilities.can_view_all_bookings():
        stmt = stmt.where(RentalRequest.UserID == capabilities.user_id)
    if status:
        stmt = stmt.where(RentalRequest.AdminStatus == status)
    stmt = stmt.order_by(RentalRequest.CreatedDate.desc(), RentalRequest.RequestID.desc())
    return list(db.execute(stmt).scalars().all())


def decide_rental_request(
    db: Session,
    capabilities: Capabilities,
    request_id: int,
    decision: str,
    reason: str | None = None,
) -> RentalRequest:
    capabilities.require("approveRental", "Only admins can approve or reject rental requests.")
    rental_request = db.get(RentalRequest, request_id)
    if rental_request is None:
        raise BookingNotFoundError("Rental request not found")

    target = {"approve": "approved", "reject": "rejected"}.get(decision)
    if target is None:
        raise BookingValidationError("decision must be approve or reject.")
    current = rental_request.AdminStatus or "pending"
    if target not in REQUEST_TRANSITIONS.get(current, set()):
        raise BookingStateError(f"Rental request is not pending decision (current: {current}).")

    rental_request.AdminStatus = target
    rental_request.DecisionReason = _required(reason) or None
    rental_request.DecidedBy = capabilities.user_id
    rental_request.DecisionDate = datetime.now()
    db.commit()
    LOGGER.info("Rental request %s id=%s by=%s", target, request_id, capabilities.user_id)
    return rental_request


def confirm_rental_request(db: Session, capabilities: Capabilities, request_id: int) -> Rental:
    """Promote an approved request into an ongoing rental ("Rent Now").

    Duration and price are copied from the request so the rental always
    matches what the clinic was quoted.
    """
    rental_request = db.get(RentalRequest, request_id)
    if rental_request is None or rental_request.UserID != capabilities.user_id:
        raise BookingNotFoundError("Rental request not found")
    current = request_state(rental_request)
    if current == "rented":
        raise BookingStateError("Rental request has already been confirmed.")
    if current != "approved":
        raise BookingStateError(f"Only approved rental requests can be confirmed (current: {current}).")

    rental = Rental(
        UserID=rental_request.UserID,
        MachineID=rental_request.MachineID,
        MachineName=rental_request.MachineName,
        RequestID=rental_request.RequestID,
        RentalDuration=rental_request.RentalDuration,
        TotalPrice=rental_request.TotalPrice,
        Status="ongoing",
        StartDate=date.today(),
        CreatedDate=datetime.now(),
        UpdatedDate=datetime.now(),
    )
    db.add(rental)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise BookingStateError("Rental request has already been confirmed.")
    # Claim the request only if no concurrent confirmation linked it first.
    claimed = db.execute(
        update(RentalRequest)
        .where(
            RentalRequest.RequestID == request_id,
            RentalRequest.AdminStatus == "approved",
            RentalRequest.RentalID.is_(None),
        )
        .values(RentalID=rental.RentalID)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise BookingStateError("Rental request has already been confirmed.")
    rental_request.RentalID = rental.RentalID
    db.commit()
    db.refresh(rental)
    LOGGER.info("Rental activated id=%s request=%s user=%s", rental.RentalID, request_id, capabilities.user_id)
    return rental


def list_rentals(db: Session, capabilities: Capabilities, status: str | None = None) -> list[Rental]:
    stmt = select(Rental)
    if not capabilities.can_view_all_bookings():
        stmt = stmt.where(Rental.UserID == capabilities.user_id)
    if status:
        stmt = stmt.where(Rental.Status == status)
    stmt = stmt.order_by(Rental.CreatedDate.desc(), Rental.RentalID.desc())
    return list(db.execute(stmt).scalars().all())


def update_rental_status(db: Session, capabilities: Capabilities, rental_id: int, status: str) -> Rental:
    capabilities.require("updateRentalStatus", "Unauthorized: Only admins can update rental status")
    rental = db.get(Rental, rental_id)
    if rental is None:
        raise BookingNotFoundError("Rental not found")
    current = rental.Status or "ongoing"
    if status == current:
        return rental
    if status not in RENTAL_TRANSITIONS.get(current, set()):
        raise BookingStateError(f"Invalid state transition: {current} -> {status}")
    rental.Status = status
    rental.UpdatedDate = datetime.now()
    db.commit()
    LOGGER.info("Rental status id=%s %s -> %s by=%s", rental_id, current, status, capabilities.user_id)
    return rental
