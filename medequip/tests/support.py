import os
import tempfile
import unittest
from itertools import count

from fastapi.testclient import TestClient


os.environ.setdefault("MEDEQUIP_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SESSION_SIGNING_SECRET", "x" * 48)
os.environ.setdefault("MEDEQUIP_DATA_DIR", tempfile.mkdtemp(prefix="medequip-tests-"))
os.environ.setdefault("AUTH_MAX_ATTEMPTS_PER_IP", "1000")

from medequip import MedEquip as app_module
from medequip.db.base import Base
from medequip.db.session import SessionLocalStore, engine_store
from medequip.schemas.machines import MachineRecord
from medequip.services.machine_store_service import DatabaseMachineStore
from medequip.services.user_access_service import assign_role


PASSWORD = "secret-pass"
_EMAILS = count(1)


def machine_payload(**overrides) -> dict:
    payload = {
        "machineName": "Philips IntelliVue MX450",
        "type": "Patient Monitor",
        "category": "Monitoring",
        "condition": "Excellent",
        "description": "Bedside monitor with ECG and SpO2.",
        "price": 45000,
        "availability": True,
        "repairHistory": ["Display replaced"],
        "sparePartsReplaced": ["NIBP pump"],
        "warrantyInfo": "6 months",
        "rentalPricing": {"perDay": 600, "perWeek": 3500, "perMonth": 5000},
    }
    payload.update(overrides)
    return payload


class StoreTestCase(unittest.TestCase):
    def setUp(self):
        Base.metadata.create_all(bind=engine_store)

    def tearDown(self):
        Base.metadata.drop_all(bind=engine_store)

    def add_machine(self, machine_id: str, **overrides) -> MachineRecord:
        record = MachineRecord.model_validate(machine_payload(id=machine_id, **overrides))
        with SessionLocalStore() as db:
            return DatabaseMachineStore(db).add(record)

    def signup(self, role: str = "clinic"):
        """Register a fresh account on its own client; returns (client, headers, user_id)."""
        client = TestClient(app_module.app)
        email = f"user{next(_EMAILS)}@clinic.example"
        response = client.post(
            "/api/auth/signup",
            json={"email": email, "password": PASSWORD, "fullName": "Test Clinic"},
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        user_id = body["user"]["id"]
        if role != "clinic":
            with SessionLocalStore() as db:
                assign_role(db, user_id, role)
        headers = {"X-Session-Token": body["sessionToken"]}
        return client, headers, user_id
