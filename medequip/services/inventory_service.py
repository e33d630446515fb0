from __future__ import annotations

import logging
import uuid

from medequip.schemas.machines import MachineRecord, MachineUpsert
from medequip.services.authorization_service import Capabilities


REQUIRED_FIELDS = ("machineName", "type", "category", "description")

LOGGER = logging.getLogger("medequip.inventory")


class InventoryValidationError(ValueError):
    pass


class MachineNotFoundError(LookupError):
    pass


def generate_machine_id() -> str:
    # Random ids: a deleted machine's id is never handed out again.
    return uuid.uuid4().hex


def _validated_record(machine_id: str, payload: MachineUpsert) -> MachineRecord:
    values = payload.model_dump()
    missing = [field for field in REQUIRED_FIELDS if not str(values.get(field) or "").strip()]
    if missing:
        raise InventoryValidationError("Please fill all required fields")
    values["id"] = machine_id
    for field in REQUIRED_FIELDS:
        values[field] = values[field].strip()
    values["image"] = values.get("image") or ""
    values["warrantyInfo"] = values.get("warrantyInfo") or ""
    values["repairHistory"] = [item for item in values.get("repairHistory") or [] if str(item).strip()]
    values["sparePartsReplaced"] = [item for item in values.get("sparePartsReplaced") or [] if str(item).strip()]
    return MachineRecord.model_validate(values)


def create_machine(store, capabilities: Capabilities, payload: MachineUpsert) -> MachineRecord:
    capabilities.require("manageInventory", "Only admins can manage inventory.")
    record = _validated_record(generate_machine_id(), payload)
    created = store.add(record)
    LOGGER.info("Machine created id=%s by=%s", created.id, capabilities.user_id)
    return created


def update_machine(store, capabilities: Capabilities, machine_id: str, payload: MachineUpsert) -> MachineRecord:
    capabilities.require("manageInventory", "Only admins can manage inventory.")
    record = _validated_record(machine_id, payload)
    updated = store.replace(record)
    if updated is None:
        raise MachineNotFoundError(f"Machine {machine_id} not found")
    LOGGER.info("Machine updated id=%s by=%s", machine_id, capabilities.user_id)
    return updated


def delete_machine(store, capabilities: Capabilities, machine_id: str) -> None:
    capabilities.require("manageInventory", "Only admins can manage inventory.")
    if not store.remove(machine_id):
        raise MachineNotFoundError(f"Machine {machine_id} not found")
    LOGGER.info("Machine deleted id=%s by=%s", machine_id, capabilities.user_id)
