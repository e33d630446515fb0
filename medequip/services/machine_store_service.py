from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from medequip.models.store_models import Machine, RetiredMachine
from medequip.schemas.machines import MachineRecord
from medequip.services.user_access_service import data_dir


LOCAL_MACHINES_KEY = "adminMachines"
LOCAL_RETIRED_KEY = "retiredMachineIds"
LOCAL_STORE_FILENAME = "local_store.json"

LOGGER = logging.getLogger("medequip.store")
_LOCK = threading.Lock()


class MachineIdRetiredError(ValueError):
    pass


def serialize_machine(machine: Machine) -> MachineRecord:
    return MachineRecord(
        id=machine.MachineID,
        machineName=machine.MachineName,
        type=machine.Type,
        category=machine.Category,
        condition=machine.Condition or "Good",
        description=machine.Description,
        price=float(machine.Price or 0),
        image=machine.ImagePath or "",
        availability=bool(machine.IsAvailable),
        repairHistory=list(machine.RepairHistory or []),
        sparePartsReplaced=list(machine.SparePartsReplaced or []),
        warrantyInfo=machine.WarrantyInfo or "",
        rentalPricing={
            "perDay": float(machine.PerDay or 0),
            "perWeek": float(machine.PerWeek or 0),
            "perMonth": float(machine.PerMonth or 0),
        },
    )


def _apply_record(machine: Machine, record: MachineRecord) -> None:
    machine.MachineName = record.machineName
    machine.Type = record.type
    machine.Category = record.category
    machine.Condition = record.condition
    machine.Description = record.description
    machine.Price = record.price
    machine.ImagePath = record.image
    machine.IsAvailable = record.availability
    machine.RepairHistory = list(record.repairHistory)
    machine.SparePartsReplaced = list(record.sparePartsReplaced)
    machine.WarrantyInfo = record.warrantyInfo
    machine.PerDay = record.rentalPricing.perDay
    machine.PerWeek = record.rentalPricing.perWeek
    machine.PerMonth = record.rentalPricing.perMonth
    machine.UpdatedDate = datetime.now()


class DatabaseMachineStore:
    def __init__(self, db: Session):
        self.db = db

    def list_machines(self) -> list[MachineRecord]:
        rows = self.db.execute(
            select(Machine).order_by(Machine.CreatedDate, Machine.MachineID)
        ).scalars().all()
        return [serialize_machine(row) for row in rows]

    def get_machine(self, machine_id: str) -> MachineRecord | None:
        row = self.db.get(Machine, machine_id)
        return serialize_machine(row) if row else None

    def is_retired(self, machine_id: str) -> bool:
        return self.db.get(RetiredMachine, machine_id) is not None

    def add(self, record: MachineRecord) -> MachineRecord:
        if self.is_retired(record.id):
            raise MachineIdRetiredError(f"Machine id {record.id} was deleted and cannot be reused")
        machine = Machine(MachineID=record.id, CreatedDate=datetime.now())
        _apply_record(machine, record)
        self.db.add(machine)
        self.db.commit()
        return serialize_machine(machine)

    def replace(self, record: MachineRecord) -> MachineRecord | None:
        machine = self.db.get(Machine, record.id)
        if machine is None:
            return None
        _apply_record(machine, record)
        self.db.commit()
        return serialize_machine(machine)

    def remove(self, machine_id: str) -> bool:
        machine = self.db.get(Machine, machine_id)
        if machine is None:
            return False
        self.db.delete(machine)
        self.db.add(RetiredMachine(MachineID=machine_id, RetiredDate=datetime.now()))
        self.db.commit()
        return True


class LocalMachineStore:
    """Machine list kept in a flat JSON key-value file.

    Every mutation rewrites the whole list and swaps the file into place.
    """

    def __init__(self, path: Path):
        self.path = path

    def _load_unlocked(self) -> list[MachineRecord]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, ValueError):
            LOGGER.warning("Local store unreadable path=%s; starting empty", self.path)
            return []
        raw_machines = payload.get(LOCAL_MACHINES_KEY) if isinstance(payload, dict) else None
        if not isinstance(raw_machines, list):
            return []
        records: list[MachineRecord] = []
        for item in raw_machines:
            try:
                records.append(MachineRecord.model_validate(item))
            except ValidationError:
                LOGGER.warning("Skipping invalid machine entry in local store: %r", item)
        return records

    def _read_payload_unlocked(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            existing = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, ValueError):
            return {}
        return existing if isinstance(existing, dict) else {}

    def _load_retired_unlocked(self) -> set[str]:
        raw_ids = self._read_payload_unlocked().get(LOCAL_RETIRED_KEY)
        if not isinstance(raw_ids, list):
            return set()
        return {str(item) for item in raw_ids}

    def _save_unlocked(self, records: list[MachineRecord], retired: set[str] | None = None) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._read_payload_unlocked()
        payload[LOCAL_MACHINES_KEY] = [record.model_dump() for record in records]
        if retired is not None:
            payload[LOCAL_RETIRED_KEY] = sorted(retired)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def list_machines(self) -> list[MachineRecord]:
        with _LOCK:
            return self._load_unlocked()

    def get_machine(self, machine_id: str) -> MachineRecord | None:
        for record in self.list_machines():
            if record.id == machine_id:
                return record
        return None

    def is_retired(self, machine_id: str) -> bool:
        with _LOCK:
            return machine_id in self._load_retired_unlocked()

    def add(self, record: MachineRecord) -> MachineRecord:
        with _LOCK:
            if record.id in self._load_retired_unlocked():
                raise MachineIdRetiredError(f"Machine id {record.id} was deleted and cannot be reused")
            records = self._load_unlocked()
            records.append(record)
            self._save_unlocked(records)
        return record

    def replace(self, record: MachineRecord) -> MachineRecord | None:
        with _LOCK:
            records = self._load_unlocked()
            if not any(item.id == record.id for item in records):
                return None
            self._save_unlocked([record if item.id == record.id else item for item in records])
        return record

    def remove(self, machine_id: str) -> bool:
        with _LOCK:
            records = self._load_unlocked()
            remaining = [item for item in records if item.id != machine_id]
            if len(remaining) == len(records):
                return False
            self._save_unlocked(remaining, self._load_retired_unlocked() | {machine_id})
        return True


def store_backend() -> str:
    return (os.environ.get("MACHINE_STORE_BACKEND") or "database").strip().lower()


def get_machine_store(db: Session, data_path: Path | None = None):
    if store_backend() == "local":
        return LocalMachineStore((data_path or data_dir()) / LOCAL_STORE_FILENAME)
    return DatabaseMachineStore(db)
