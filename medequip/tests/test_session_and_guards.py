import unittest
from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from medequip.tests.support import PASSWORD, StoreTestCase, app_module

from fastapi.testclient import TestClient

from medequip.models.store_models import AppUser, UserRole
from medequip.services.navigation_service import match_route, resolve_navigation
from medequip.services.role_resolver import SessionRoleResolver
from medequip.services import user_access_service
from medequip.services.route_guards import admin_guard, clinic_guard
from medequip.services.user_access_service import create_session, get_session


def _resolver(user=True, role=None, loading=False):
    return SimpleNamespace(user={"id": "u1"} if user else None, role=role, loading=loading)


class FlakyRoleDb:
    """Serves the user row but fails every role lookup."""

    def __init__(self, user):
        self.user = user
        self.rollbacks = 0

    def get(self, model, identifier):
        if model is UserRole:
            raise OperationalError("SELECT role", {}, Exception("store unavailable"))
        if model is AppUser and identifier == self.user.UserID:
            return self.user
        return None

    def rollback(self):
        self.rollbacks += 1


class RouteGuardTests(unittest.TestCase):
    def test_clinic_guard(self):
        self.assertEqual(clinic_guard(_resolver(user=False, loading=True)).action, "loading")
        decision = clinic_guard(_resolver(user=False))
        self.assertEqual((decision.action, decision.location), ("redirect", "/login"))
        decision = clinic_guard(_resolver(role="admin"))
        self.assertEqual((decision.action, decision.location), ("redirect", "/admin-login"))
        decision = clinic_guard(_resolver(role=None))
        self.assertEqual(decision.location, "/admin-login")
        self.assertTrue(clinic_guard(_resolver(role="clinic")).allowed)

    def test_admin_guard(self):
        self.assertEqual(admin_guard(_resolver(role="admin", loading=True)).action, "loading")
        decision = admin_guard(_resolver(user=False))
        self.assertEqual((decision.action, decision.location), ("redirect", "/admin-login"))
        decision = admin_guard(_resolver(role="clinic"))
        self.assertEqual((decision.action, decision.location), ("redirect", "/"))
        self.assertEqual(admin_guard(_resolver(role=None)).location, "/")
        self.assertTrue(admin_guard(_resolver(role="admin")).allowed)


class NavigationTests(unittest.TestCase):
    def test_machine_detail_with_action(self):
        result = resolve_navigation("/machines/7?action=rent", _resolver(role="clinic"))
        self.assertEqual(result["route"], "machine_detail")
        self.assertEqual(result["params"], {"id": "7"})
        self.assertEqual(result["action"], "rent")
        self.assertEqual(result["decision"]["action"], "allow")

    def test_action_only_applies_to_machine_detail(self):
        self.assertIsNone(resolve_navigation("/machines?action=buy", _resolver(role="clinic"))["action"])
        self.assertIsNone(resolve_navigation("/machines/7?action=steal", _resolver(role="clinic"))["action"])

    def test_unknown_paths_hit_catch_all(self):
        route, params = match_route("/machines/7/parts")
        self.assertEqual((route.name, params), ("not_found", {}))
        result = resolve_navigation("/nowhere", _resolver(user=False))
        self.assertEqual(result["route"], "not_found")
        self.assertEqual(result["decision"]["action"], "allow")

    def test_admin_route_redirects_clinic_home(self):
        result = resolve_navigation("/admin", _resolver(role="clinic"))
        self.assertEqual(result["decision"], {"action": "redirect", "location": "/", "reason": "admin_role_required"})


class SessionRoleResolverTests(StoreTestCase):
    def test_resolver_is_loading_until_resolved(self):
        _, headers, user_id = self.signup()
        from medequip.db.session import SessionLocalStore

        with SessionLocalStore() as db:
            resolver = SessionRoleResolver(db, headers["X-Session-Token"])
            self.assertTrue(resolver.loading)
            self.assertFalse(resolver.capabilities().can_browse_catalog())
            resolver.resolve()
            self.assertFalse(resolver.loading)
            self.assertEqual(resolver.user_id, user_id)
            self.assertEqual(resolver.role, "clinic")
            self.assertTrue(resolver.capabilities().can_request_rental())
            self.assertFalse(resolver.capabilities().can_manage_inventory())

    def test_invalid_token_resolves_to_no_user(self):
        from medequip.db.session import SessionLocalStore

        with SessionLocalStore() as db:
            resolver = SessionRoleResolver(db, "not-a-token").resolve()
        self.assertEqual(resolver.snapshot(), {"user": None, "role": None, "loading": False})

    def test_role_lookup_failure_means_no_role(self):
        user = AppUser(UserID="u-flaky", Email="flaky@clinic.example", FullName="Flaky")
        db = FlakyRoleDb(user)
        token = create_session({"userID": user.UserID})
        with self.assertLogs("medequip.auth", level="ERROR"):
            resolver = SessionRoleResolver(db, token).resolve()
        self.assertFalse(resolver.loading)
        self.assertEqual(resolver.user_id, "u-flaky")
        self.assertIsNone(resolver.role)
        self.assertEqual(db.rollbacks, 1)
        self.assertFalse(resolver.capabilities().can_browse_catalog())

    def test_sign_out_revokes_token(self):
        _, headers, _ = self.signup()
        token = headers["X-Session-Token"]
        from medequip.db.session import SessionLocalStore

        with SessionLocalStore() as db:
            resolver = SessionRoleResolver(db, token).resolve()
            resolver.sign_out()
        self.assertIsNone(resolver.user)
        self.assertIsNone(get_session(token))


class SessionTokenTests(unittest.TestCase):
    def test_tokens_validate_from_signature_without_server_registry(self):
        tokens = [create_session({"userID": f"user-{index}"}) for index in range(50)]
        self.assertEqual([get_session(token)["userID"] for token in tokens], [f"user-{index}" for index in range(50)])

        suffix = "BB" if tokens[0].endswith("AA") else "AA"
        self.assertIsNone(get_session(tokens[0][:-2] + suffix))

        registries = [
            name
            for name, value in vars(user_access_service).items()
            if isinstance(value, dict) and any(token in value for token in tokens)
        ]
        self.assertEqual(registries, [])


class AuthApiTests(StoreTestCase):
    def test_signup_me_logout(self):
        client, headers, user_id = self.signup()
        me = client.get("/api/auth/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        body = me.json()
        self.assertEqual(body["user"]["id"], user_id)
        self.assertEqual(body["role"], "clinic")
        self.assertFalse(body["loading"])
        self.assertTrue(body["capabilities"]["requestRental"])
        self.assertFalse(body["capabilities"]["approveRental"])

        logout = client.post("/api/auth/logout", headers=headers)
        self.assertEqual(logout.status_code, 200)
        after = TestClient(app_module.app).get("/api/auth/me", headers=headers)
        self.assertEqual(after.status_code, 401)
        self.assertEqual(after.headers.get("x-redirect-to"), "/login")

    def test_cookie_session_is_enough(self):
        client, _, user_id = self.signup()
        me = client.get("/api/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["user"]["id"], user_id)

    def test_signup_validation(self):
        client = TestClient(app_module.app)
        cases = [
            ({"email": "", "password": PASSWORD, "fullName": "A"}, "Please fill in all required fields"),
            ({"email": "not-an-email", "password": PASSWORD, "fullName": "A"}, "Please enter a valid email address"),
            ({"email": "a@clinic.example", "password": "123", "fullName": "A"}, "Password must be at least 6 characters"),
            ({"email": "a@clinic.example", "password": PASSWORD, "fullName": " "}, "Please enter your full name"),
        ]
        for payload, message in cases:
            with self.subTest(payload=payload):
                response = client.post("/api/auth/signup", json=payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["detail"], message)

    def test_duplicate_signup_rejected(self):
        client = TestClient(app_module.app)
        payload = {"email": "dup@clinic.example", "password": PASSWORD, "fullName": "Dup"}
        self.assertEqual(client.post("/api/auth/signup", json=payload).status_code, 200)
        second = client.post("/api/auth/signup", json={**payload, "email": "DUP@clinic.example"})
        self.assertEqual(second.status_code, 400)

    def test_login_redirects_by_role_and_enforces_portal(self):
        clinic_client, clinic_headers, _ = self.signup()
        clinic_email = clinic_client.get("/api/auth/me", headers=clinic_headers).json()["user"]["email"]
        admin_client, admin_headers, _ = self.signup(role="admin")
        admin_email = admin_client.get("/api/auth/me", headers=admin_headers).json()["user"]["email"]

        client = TestClient(app_module.app)
        clinic_login = client.post("/api/auth/login", json={"email": clinic_email, "password": PASSWORD, "portal": "clinic"})
        self.assertEqual(clinic_login.status_code, 200)
        self.assertEqual(clinic_login.json()["redirectTo"], "/")

        admin_login = client.post("/api/auth/login", json={"email": admin_email, "password": PASSWORD})
        self.assertEqual(admin_login.status_code, 200)
        self.assertEqual(admin_login.json()["role"], "admin")
        self.assertEqual(admin_login.json()["redirectTo"], "/admin")

        wrong_portal = TestClient(app_module.app).post("/api/auth/login", json={"email": clinic_email, "password": PASSWORD, "portal": "admin"})
        self.assertEqual(wrong_portal.status_code, 403)

    def test_login_rejects_bad_password(self):
        client, headers, _ = self.signup()
        email = client.get("/api/auth/me", headers=headers).json()["user"]["email"]
        response = TestClient(app_module.app).post("/api/auth/login", json={"email": email, "password": "wrong-pass"})
        self.assertEqual(response.status_code, 401)

    def test_navigation_endpoint_evaluates_guards_for_caller(self):
        anonymous = TestClient(app_module.app).get("/api/navigation/resolve", params={"path": "/admin"})
        self.assertEqual(anonymous.json()["decision"]["location"], "/admin-login")

        client, headers, _ = self.signup()
        clinic_admin = client.get("/api/navigation/resolve", params={"path": "/admin"}, headers=headers)
        self.assertEqual(clinic_admin.json()["decision"]["location"], "/")
        clinic_home = client.get("/api/navigation/resolve", params={"path": "/machines/3?action=buy"}, headers=headers)
        self.assertEqual(clinic_home.json()["decision"]["action"], "allow")
        self.assertEqual(clinic_home.json()["action"], "buy")


if __name__ == "__main__":
    unittest.main()
