#!/usr/bin/env python3
"""Load a handful of demo machines into the configured machine store."""
from __future__ import annotations

import argparse

from dotenv import load_dotenv

load_dotenv()

from medequip.db.base import Base
from medequip.db.session import SessionLocalStore, engine_store
from medequip.schemas.machines import MachineRecord
from medequip.services.machine_store_service import get_machine_store, store_backend


DEMO_MACHINES = [
    {
        "id": "1",
        "machineName": "Philips IntelliVue MX450",
        "type": "Patient Monitor",
        "category": "Monitoring",
        "condition": "Excellent",
        "description": "Compact bedside monitor with ECG, SpO2 and NIBP modules.",
        "price": 45000,
        "availability": True,
        "repairHistory": ["Display panel replaced"],
        "sparePartsReplaced": ["NIBP pump"],
        "warrantyInfo": "6 months parts and labour",
        "rentalPricing": {"perDay": 600, "perWeek": 3500, "perMonth": 12000},
    },
    {
        "id": "2",
        "machineName": "Mindray SV300",
        "type": "Ventilator",
        "category": "Critical Care",
        "condition": "Good",
        "description": "ICU ventilator refurbished with new flow sensors.",
        "price": 65000,
        "availability": True,
        "repairHistory": ["Flow sensor recalibrated", "Firmware updated"],
        "sparePartsReplaced": ["Flow sensor", "Exhalation valve"],
        "warrantyInfo": "3 months parts",
        "rentalPricing": {"perDay": 1200, "perWeek": 7000, "perMonth": 25000},
    },
    {
        "id": "3",
        "machineName": "GE Logiq E",
        "type": "Ultrasound",
        "category": "Imaging",
        "condition": "Fair",
        "description": "Portable ultrasound with linear and convex probes.",
        "price": 38000,
        "availability": False,
        "repairHistory": [],
        "sparePartsReplaced": ["Battery pack"],
        "warrantyInfo": "",
        "rentalPricing": {"perDay": 900, "perWeek": 5000, "perMonth": 18000},
    },
]


def seed_machines(store, replace: bool = False) -> dict[str, int]:
    """Add the demo machines that are missing; ids an admin deleted stay deleted."""
    counts = {"created": 0, "updated": 0, "skipped": 0}
    for raw in DEMO_MACHINES:
        record = MachineRecord.model_validate(raw)
        if store.is_retired(record.id):
            counts["skipped"] += 1
        elif store.get_machine(record.id) is None:
            store.add(record)
            counts["created"] += 1
        elif replace:
            store.replace(record)
            counts["updated"] += 1
        else:
            counts["skipped"] += 1
    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--replace", action="store_true", help="Overwrite machines that already exist.")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine_store)
    db = SessionLocalStore()
    try:
        counts = seed_machines(get_machine_store(db), replace=args.replace)
    finally:
        db.close()

    print(
        f"Seeded {store_backend()} store: created={counts['created']} "
        f"updated={counts['updated']} skipped={counts['skipped']}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
