from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from medequip.models.store_models import Purchase
from medequip.schemas.machines import MachineRecord
from medequip.services.authorization_service import Capabilities
from medequip.services.booking_service import BookingNotFoundError, BookingStateError


LOGGER = logging.getLogger("medequip.bookings")


def serialize_purchase(purchase: Purchase) -> dict:
    return {
        "id": purchase.PurchaseID,
        "userID": purchase.UserID,
        "machineID": purchase.MachineID,
        "machineName": purchase.MachineName,
        "price": float(purchase.Price or 0),
        "status": purchase.Status,
        "paidDate": purchase.PaidDate,
        "createdDate": purchase.CreatedDate,
    }


def create_purchase(db: Session, capabilities: Capabilities, machine: MachineRecord) -> Purchase:
    capabilities.require("purchase", "Only clinic accounts can purchase machines.")
    if not machine.availability:
        raise BookingStateError("Machine is currently unavailable.")
    purchase = Purchase(
        UserID=capabilities.user_id,
        MachineID=machine.id,
        MachineName=machine.machineName,
        Price=machine.price,
        Status="pending_payment",
        CreatedDate=datetime.now(),
    )
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    LOGGER.info("Purchase created id=%s machine=%s user=%s", purchase.PurchaseID, machine.id, capabilities.user_id)
    return purchase


def _own_purchase(db: Session, capabilities: Capabilities, purchase_id: int) -> Purchase:
    purchase = db.get(Purchase, purchase_id)
    if purchase is None or purchase.UserID != capabilities.user_id:
        raise BookingNotFoundError("Purchase not found")
    return purchase


def get_pending_purchase(db: Session, capabilities: Capabilities, purchase_id: int) -> Purchase:
    purchase = _own_purchase(db, capabilities, purchase_id)
    if purchase.Status != "pending_payment":
        raise BookingNotFoundError("Purchase not found")
    return purchase


def pay_purchase(db: Session, capabilities: Capabilities, purchase_id: int) -> Purchase:
    purchase = _own_purchase(db, capabilities, purchase_id)
    if purchase.Status != "pending_payment":
        raise BookingStateError("Purchase has already been paid.")
    purchase.Status = "paid"
    purchase.PaidDate = datetime.now()
    db.commit()
    LOGGER.info("Purchase paid id=%s user=%s", purchase_id, capabilities.user_id)
    return purchase
