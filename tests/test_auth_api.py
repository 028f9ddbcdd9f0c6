"""HTTP tests for /auth, /users and /health through FastAPI's TestClient."""

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from db_support import FakeClock, make_engine, make_session_factory, make_settings
from inventory.application import create_app

PREFIX = "/api/v1"


class ApiTestCase(unittest.TestCase):
    raise_server_exceptions = True

    def setUp(self) -> None:
        self.engine = make_engine()
        self.addCleanup(self.engine.dispose)
        self.clock = FakeClock()
        self.app = create_app(
            settings=make_settings(),
            engine=self.engine,
            session_factory=make_session_factory(self.engine),
            clock=self.clock,
        )
        self.client = TestClient(
            self.app,
            raise_server_exceptions=self.raise_server_exceptions,
            headers={"User-Agent": "inventory-tests/1.0"},
        )
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def login(self, username: str = "admin", password: str = "admin123") -> dict:
        resp = self.client.post(
            f"{PREFIX}/auth/login", json={"username": username, "password": password}
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        return resp.json()

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def create_user(self, admin_token: str, username: str, role: str, password: str = "password123") -> None:
        resp = self.client.post(
            f"{PREFIX}/users",
            json={
                "username": username,
                "email": f"{username}@example.com",
                "password": password,
                "role": role,
            },
            headers=self.bearer(admin_token),
        )
        self.assertEqual(resp.status_code, 201, resp.text)

    def user_id(self, admin_token: str, username: str) -> str:
        users = self.client.get(f"{PREFIX}/users", headers=self.bearer(admin_token)).json()
        return next(u["id"] for u in users if u["username"] == username)


class TestLoginEndpoint(ApiTestCase):
    def test_default_admin_login(self) -> None:
        body = self.login()
        self.assertEqual(set(body), {"accessToken", "refreshToken", "user"})
        user = body["user"]
        self.assertEqual(user["username"], "admin")
        self.assertEqual(user["email"], "admin@inventory.local")
        self.assertEqual(user["role"], "ADMIN")
        self.assertTrue(user["isActive"])
        self.assertIn("createdAt", user)
        self.assertIn("updatedAt", user)
        self.assertNotIn("passwordHash", user)
        self.assertNotIn("password_hash", user)

    def test_each_login_gets_a_new_refresh_token(self) -> None:
        first = self.login()["refreshToken"]
        second = self.login()["refreshToken"]
        self.assertNotEqual(first, second)

    def test_invalid_credentials(self) -> None:
        for username, password in (("admin", "wrong-pass"), ("ghost", "admin123")):
            resp = self.client.post(
                f"{PREFIX}/auth/login", json={"username": username, "password": password}
            )
            self.assertEqual(resp.status_code, 401)
            self.assertEqual(
                resp.json(),
                {"error": "INVALID_CREDENTIALS", "message": "Invalid username or password"},
            )

    def test_disabled_account(self) -> None:
        admin = self.login()["accessToken"]
        self.create_user(admin, "carol", "USER")
        carol_id = self.user_id(admin, "carol")
        resp = self.client.patch(
            f"{PREFIX}/users/{carol_id}", json={"isActive": False}, headers=self.bearer(admin)
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "carol", "password": "password123"}
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json()["error"], "ACCOUNT_DISABLED")

    def test_malformed_body(self) -> None:
        resp = self.client.post(f"{PREFIX}/auth/login", json={"username": "admin"})
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(resp.json()["error"], "VALIDATION_ERROR")


class TestRefreshAndLogoutEndpoints(ApiTestCase):
    def test_refresh_returns_new_pair(self) -> None:
        login = self.login()
        resp = self.client.post(
            f"{PREFIX}/auth/refresh", json={"refreshToken": login["refreshToken"]}
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(set(body), {"accessToken", "refreshToken"})
        self.assertNotEqual(body["refreshToken"], login["refreshToken"])
        me = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(body["accessToken"]))
        self.assertEqual(me.status_code, 200)

    def test_refresh_twice_fails(self) -> None:
        token = self.login()["refreshToken"]
        first = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": token})
        self.assertEqual(first.status_code, 200)
        second = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": token})
        self.assertEqual(second.status_code, 401)
        self.assertEqual(
            second.json(),
            {"error": "INVALID_REFRESH_TOKEN", "message": "Invalid or expired refresh token"},
        )

    def test_logout_then_refresh(self) -> None:
        token = self.login()["refreshToken"]
        resp = self.client.post(f"{PREFIX}/auth/logout", json={"refreshToken": token})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Logged out successfully"})
        resp = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": token})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "INVALID_REFRESH_TOKEN")

    def test_logout_unknown_token_still_succeeds(self) -> None:
        resp = self.client.post(f"{PREFIX}/auth/logout", json={"refreshToken": "not-a-token"})
        self.assertEqual(resp.status_code, 200)

    def test_expired_refresh_token(self) -> None:
        token = self.login()["refreshToken"]
        self.clock.advance(days=31)
        resp = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": token})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "INVALID_REFRESH_TOKEN")


class TestMeEndpoint(ApiTestCase):
    def test_me_returns_profile(self) -> None:
        token = self.login()["accessToken"]
        resp = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(token))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["username"], "admin")

    def test_me_without_token(self) -> None:
        resp = self.client.get(f"{PREFIX}/auth/me")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "UNAUTHORIZED")
        self.assertEqual(resp.headers.get("www-authenticate"), "Bearer")

    def test_me_with_invalid_or_expired_token(self) -> None:
        resp = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer("garbage"))
        self.assertEqual(resp.status_code, 401)
        token = self.login()["accessToken"]
        self.clock.advance(minutes=15, seconds=1)
        resp = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(token))
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "UNAUTHORIZED")

    def test_me_for_deleted_user(self) -> None:
        admin = self.login()["accessToken"]
        self.create_user(admin, "dave", "USER")
        dave = self.login("dave", "password123")["accessToken"]
        dave_id = self.user_id(admin, "dave")
        resp = self.client.delete(f"{PREFIX}/users/{dave_id}", headers=self.bearer(admin))
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(dave))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "USER_NOT_FOUND")


class TestUsersEndpoints(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin = self.login()["accessToken"]

    def test_requires_authentication_before_permission(self) -> None:
        resp = self.client.get(f"{PREFIX}/users")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["error"], "UNAUTHORIZED")

    def test_viewer_can_read_but_not_create(self) -> None:
        self.create_user(self.admin, "vera", "VIEWER")
        viewer = self.login("vera", "password123")["accessToken"]
        resp = self.client.get(f"{PREFIX}/users", headers=self.bearer(viewer))
        self.assertEqual(resp.status_code, 200)
        resp = self.client.post(
            f"{PREFIX}/users",
            json={"username": "x", "email": "x@example.com", "password": "password123"},
            headers=self.bearer(viewer),
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(
            resp.json(), {"error": "INSUFFICIENT_PERMISSIONS", "message": "Insufficient permissions"}
        )

    def test_manager_has_no_user_permissions(self) -> None:
        self.create_user(self.admin, "max", "MANAGER")
        manager = self.login("max", "password123")["accessToken"]
        resp = self.client.get(f"{PREFIX}/users", headers=self.bearer(manager))
        self.assertEqual(resp.status_code, 403)

    def test_create_conflict(self) -> None:
        self.create_user(self.admin, "erin", "USER")
        resp = self.client.post(
            f"{PREFIX}/users",
            json={"username": "erin", "email": "other@example.com", "password": "password123"},
            headers=self.bearer(self.admin),
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["error"], "USER_EXISTS")

    def test_get_and_update_user(self) -> None:
        self.create_user(self.admin, "frank", "USER")
        frank_id = self.user_id(self.admin, "frank")
        resp = self.client.patch(
            f"{PREFIX}/users/{frank_id}",
            json={"email": "frank@corp.example", "role": "MANAGER"},
            headers=self.bearer(self.admin),
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f"{PREFIX}/users/{frank_id}", headers=self.bearer(self.admin))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["email"], "frank@corp.example")
        self.assertEqual(resp.json()["role"], "MANAGER")

    def test_unknown_user_id(self) -> None:
        missing = "00000000-0000-4000-8000-000000000000"
        resp = self.client.get(f"{PREFIX}/users/{missing}", headers=self.bearer(self.admin))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "USER_NOT_FOUND")
        resp = self.client.get(f"{PREFIX}/users/not-a-uuid", headers=self.bearer(self.admin))
        self.assertEqual(resp.status_code, 422)

    def test_password_change_revokes_sessions(self) -> None:
        self.create_user(self.admin, "gina", "USER")
        refresh = self.login("gina", "password123")["refreshToken"]
        gina_id = self.user_id(self.admin, "gina")
        resp = self.client.patch(
            f"{PREFIX}/users/{gina_id}",
            json={"password": "a-new-password"},
            headers=self.bearer(self.admin),
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": refresh})
        self.assertEqual(resp.status_code, 401)
        self.login("gina", "a-new-password")

    def test_revoke_sessions_endpoint(self) -> None:
        self.create_user(self.admin, "hank", "USER")
        refresh = self.login("hank", "password123")["refreshToken"]
        hank_id = self.user_id(self.admin, "hank")
        resp = self.client.post(
            f"{PREFIX}/users/{hank_id}/revoke-sessions", headers=self.bearer(self.admin)
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Revoked 1 session(s)"})
        resp = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": refresh})
        self.assertEqual(resp.status_code, 401)


class TestMiscEndpoints(ApiTestCase):
    def test_root(self) -> None:
        resp = self.client.get("/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "Inventory API")

    def test_health(self) -> None:
        resp = self.client.get(f"{PREFIX}/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["database"], "connected")
        self.assertEqual(resp.json()["environment"], "dev")

    def test_unknown_route(self) -> None:
        resp = self.client.get(f"{PREFIX}/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"], "NOT_FOUND")

    def test_factory_module_builds_nothing_at_import(self) -> None:
        import inventory.application

        self.assertFalse(hasattr(inventory.application, "app"))
        self.assertFalse(hasattr(inventory.application, "load_dotenv"))


class TestUnhandledErrors(ApiTestCase):
    raise_server_exceptions = False

    def test_internal_error_body_hides_details(self) -> None:
        @self.app.get("/boom")
        def boom() -> None:
            raise RuntimeError("database password is hunter2")

        with self.assertLogs("inventory.core.errors", level="ERROR"):
            resp = self.client.get("/boom")
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "INTERNAL_ERROR", "message": "Internal server error"})
        self.assertNotIn("hunter2", resp.text)

    def test_failed_revocation_keeps_account_unchanged(self) -> None:
        admin = self.login()["accessToken"]
        self.create_user(admin, "ivan", "USER")
        refresh = self.login("ivan", "password123")["refreshToken"]
        ivan_id = self.user_id(admin, "ivan")
        store = self.app.state.auth_service.store
        with patch.object(
            store, "revoke_all_for_user", side_effect=SQLAlchemyError("revocation failed")
        ):
            with self.assertLogs("inventory.core.errors", level="ERROR"):
                resp = self.client.patch(
                    f"{PREFIX}/users/{ivan_id}",
                    json={"password": "a-new-password", "role": "VIEWER"},
                    headers=self.bearer(admin),
                )
        self.assertEqual(resp.status_code, 500)

        # Neither the password nor the role change was committed.
        resp = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "ivan", "password": "a-new-password"}
        )
        self.assertEqual(resp.status_code, 401)
        resp = self.client.post(f"{PREFIX}/auth/refresh", json={"refreshToken": refresh})
        self.assertEqual(resp.status_code, 200)
        resp = self.client.get(f"{PREFIX}/users/{ivan_id}", headers=self.bearer(admin))
        self.assertEqual(resp.json()["role"], "USER")


if __name__ == "__main__":
    unittest.main()
