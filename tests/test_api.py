import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock
from zoneinfo import ZoneInfo

from metricsbridge.core.config import BridgeSettings
from metricsbridge.main import attach_host, create_app, get_state
from metricsbridge.services.console_log import ConsoleLogSink
from metricsbridge.services.host import CommandResult, HostServer, PlayerInfo
from metricsbridge.services.metrics_aggregator import UNAVAILABLE
from metricsbridge.services.metrics_sampler import MetricsSampler

LEGACY_TOKEN = "legacy-secret"


class FakeHost(HostServer):
    def get_players(self):
        return [PlayerInfo("Steve", 25, 1.0, 64.0, 1.0, "minecraft:overworld")]

    def execute_command(self, command):
        return CommandResult(1, f"ran {command}")

    def find_world_by_identifier(self, identifier):
        return identifier

    def teleport_player(self, name, x, y, z, world):
        return True


def _settings(root, fallback_token=LEGACY_TOKEN):
    return BridgeSettings(
        web_host="127.0.0.1",
        web_port=8765,
        fallback_token=fallback_token,
        users_file=root / "data" / "users.json",
        log_dir=root / "logs",
        world_dir=root / "world",
        session_timeout_seconds=3600.0,
        bcrypt_rounds=4,
        console_history_lines=50,
        rcon_host="127.0.0.1",
        rcon_port=25575,
        server_properties=root / "server.properties",
        display_tz=ZoneInfo("UTC"),
    )


def _sampler():
    process = Mock()
    process.cpu_percent.return_value = 10.0
    process.memory_info.return_value = Mock(rss=64 * 1024 * 1024)
    return MetricsSampler(process=process)


class BridgeApiTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.app = create_app(_settings(self.root), FakeHost(), sampler=_sampler(), console_sink=ConsoleLogSink(50))
        self.client = self.app.test_client()

    def tearDown(self):
        self._tmp.cleanup()

    def _login(self, username, password):
        response = self.client.post("/api/login", json={"username": username, "password": password})
        return response

    def _token(self, username, password):
        response = self._login(username, password)
        self.assertEqual(response.status_code, 200, response.get_json())
        return response.get_json()["sessionToken"]

    @staticmethod
    def _headers(token):
        return {"X-Session-Token": token}

    def test_health_and_anonymous_session(self):
        health = self.client.get("/api/test")
        self.assertEqual(health.status_code, 200)
        self.assertEqual(health.get_json()["status"], "ok")
        session = self.client.get("/api/session")
        self.assertEqual(session.get_json(), {"authenticated": False})
        self.assertEqual(self.client.head("/api/session", headers=self._headers("dummy")).status_code, 200)

    def test_login_rejects_bad_credentials_generically(self):
        wrong_password = self._login("admin", "nope")
        unknown_user = self._login("ghost", "admin")
        missing = self.client.post("/api/login", data="not json")
        for response in (wrong_password, unknown_user, missing):
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.get_json()["error"], "Invalid credentials")

    def test_default_admin_full_flow(self):
        login = self._login("admin", "admin")
        body = login.get_json()
        self.assertTrue(body["success"])
        self.assertTrue(body["isAdmin"])
        self.assertEqual(body["username"], "admin")
        token = body["sessionToken"]

        session = self.client.get("/api/session", headers=self._headers(token)).get_json()
        self.assertEqual(session, {"authenticated": True, "username": "admin", "displayName": "admin", "isAdmin": True})

        metrics = self.client.get("/api/metrics", headers=self._headers(token))
        self.assertEqual(metrics.status_code, 200)
        values = metrics.get_json()
        self.assertEqual(values["tps"], UNAVAILABLE)
        self.assertEqual(values["player_count"], 1)
        self.assertEqual(values["world_size_mb"], UNAVAILABLE)

        console = self.client.post("/api/console", json={"command": "say hi"}, headers=self._headers(token))
        self.assertEqual(console.status_code, 200)
        self.assertEqual(console.get_json()["output"], "ran say hi")
        history = self.client.get("/api/console/history", headers=self._headers(token)).get_json()
        self.assertEqual(history["total_lines"], 2)
        self.assertTrue(history["console_output"][0].endswith("> say hi"))

        teleport = self.client.post(
            "/api/teleport",
            json={"player": "Steve", "x": 1, "y": 70, "z": -4},
            headers=self._headers(token),
        )
        self.assertTrue(teleport.get_json()["success"])

        logout = self.client.post("/api/logout", headers=self._headers(token))
        self.assertEqual(logout.get_json(), {"success": True})
        after = self.client.get("/api/metrics", headers=self._headers(token))
        self.assertEqual(after.status_code, 401)
        self.assertEqual(after.get_json(), "Unauthorized")

    def test_non_admin_is_forbidden_from_admin_endpoints(self):
        admin = self._token("admin", "admin")
        created = self.client.post(
            "/api/admin/users",
            json={"username": "bob", "password": "secret1", "isAdmin": False},
            headers=self._headers(admin),
        )
        self.assertTrue(created.get_json()["success"])

        bob = self._token("bob", "secret1")
        self.assertEqual(self.client.get("/api/metrics", headers=self._headers(bob)).status_code, 200)
        for method, path, payload in (
            ("get", "/api/console/history", None),
            ("post", "/api/console", {"command": "op bob"}),
            ("post", "/api/teleport", {"player": "Steve", "x": 0, "y": 0, "z": 0}),
            ("get", "/api/admin/users", None),
            ("delete", "/api/admin/users/admin", None),
            ("put", "/api/admin/users/bob/admin", {"isAdmin": True}),
        ):
            response = getattr(self.client, method)(path, json=payload, headers=self._headers(bob))
            self.assertEqual(response.status_code, 403, path)
            self.assertEqual(response.get_json()["error"], "Admin privileges required")
        self.assertFalse(get_state(self.app).user_store.is_admin("bob"))

    def test_unauthenticated_requests_get_401(self):
        for path in ("/api/metrics", "/api/console/history", "/api/admin/users"):
            self.assertEqual(self.client.get(path).status_code, 401, path)
        self.assertEqual(self.client.get("/api/metrics", headers=self._headers("bogus")).status_code, 401)

    def test_legacy_token_reads_metrics_but_never_admin(self):
        bearer = {"Authorization": f"Bearer {LEGACY_TOKEN}"}
        self.assertEqual(self.client.get("/api/metrics", headers=bearer).status_code, 200)
        self.assertEqual(self.client.get(f"/api/metrics?token={LEGACY_TOKEN}").status_code, 200)
        self.assertEqual(self.client.get("/api/metrics?token=wrong").status_code, 401)
        self.assertEqual(self.client.get("/api/console/history", headers=bearer).status_code, 403)
        self.assertEqual(self.client.get(f"/api/admin/users?token={LEGACY_TOKEN}").status_code, 403)
        change = self.client.post(
            "/api/change-password",
            json={"oldPassword": "admin", "newPassword": "newpass1", "confirmPassword": "newpass1"},
            headers=bearer,
        )
        self.assertEqual(change.status_code, 403)

    def test_blank_legacy_token_disables_legacy_auth(self):
        app = create_app(_settings(self.root, fallback_token=""), FakeHost(), sampler=_sampler())
        client = app.test_client()
        self.assertEqual(client.get("/api/metrics", headers={"Authorization": "Bearer "}).status_code, 401)
        self.assertEqual(client.get("/api/metrics?token=").status_code, 401)

    def test_user_admin_invariants_over_http(self):
        admin = self._token("admin", "admin")
        headers = self._headers(admin)
        delete_original = self.client.delete("/api/admin/users/admin", headers=headers)
        self.assertEqual(delete_original.status_code, 409)
        self.assertEqual(delete_original.get_json()["code"], "self_delete")
        demote_self = self.client.put("/api/admin/users/admin/admin", json={"isAdmin": False}, headers=headers)
        self.assertEqual(demote_self.get_json()["code"], "self_admin_change")

        self.client.post("/api/admin/users", json={"username": "carol", "password": "secret1", "isAdmin": True},
                         headers=headers)
        carol = self._headers(self._token("carol", "secret1"))
        protected = self.client.delete("/api/admin/users/admin", headers=carol)
        self.assertEqual((protected.status_code, protected.get_json()["code"]), (409, "original_admin_protected"))
        missing = self.client.delete("/api/admin/users/ghost", headers=headers)
        self.assertEqual(missing.status_code, 404)
        short = self.client.post("/api/admin/users", json={"username": "dan", "password": "123"}, headers=headers)
        self.assertEqual((short.status_code, short.get_json()["code"]), (400, "password_too_short"))

        users = self.client.get("/api/admin/users", headers=headers).get_json()["users"]
        self.assertEqual(set(users), {"admin", "carol"})
        self.assertNotIn("salt", users["carol"])

    def test_deleted_user_session_is_revoked(self):
        admin = self._headers(self._token("admin", "admin"))
        self.client.post("/api/admin/users", json={"username": "bob", "password": "secret1"}, headers=admin)
        bob = self._headers(self._token("bob", "secret1"))
        self.assertEqual(self.client.delete("/api/admin/users/bob", headers=admin).status_code, 200)
        self.assertEqual(self.client.get("/api/metrics", headers=bob).status_code, 401)

    def test_change_and_reset_password(self):
        admin = self._headers(self._token("admin", "admin"))
        mismatch = self.client.post(
            "/api/change-password",
            json={"oldPassword": "admin", "newPassword": "newpass1", "confirmPassword": "other"},
            headers=admin,
        )
        self.assertEqual(mismatch.status_code, 400)
        changed = self.client.post(
            "/api/change-password",
            json={"oldPassword": "admin", "newPassword": "newpass1", "confirmPassword": "newpass1"},
            headers=admin,
        )
        self.assertTrue(changed.get_json()["success"])
        self.assertEqual(self._login("admin", "admin").status_code, 401)

        self.client.post("/api/admin/users", json={"username": "bob", "password": "secret1"}, headers=admin)
        reset = self.client.put("/api/admin/users/bob/password", json={"newPassword": "fresh12"}, headers=admin)
        self.assertTrue(reset.get_json()["success"])
        self.assertEqual(self._login("bob", "fresh12").status_code, 200)

    def test_unhandled_errors_become_500(self):
        state = get_state(self.app)
        state.aggregator = Mock()
        state.aggregator.snapshot.side_effect = RuntimeError("kaboom")
        token = self._token("admin", "admin")
        response = self.client.get("/api/metrics", headers=self._headers(token))
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"success": False, "error": "internal_error", "code": "internal_error"})
        log_text = (self.root / "logs" / "bridge-system.log").read_text(encoding="utf-8")
        self.assertIn("unhandled_exception path=/api/metrics", log_text)

    def test_attach_host_swaps_collaborator(self):
        token = self._token("admin", "admin")
        attach_host(self.app, None)
        values = self.client.get("/api/metrics", headers=self._headers(token)).get_json()
        self.assertEqual(values["player_count"], UNAVAILABLE)
        console = self.client.post("/api/console", json={"command": "list"}, headers=self._headers(token))
        self.assertEqual(console.status_code, 503)


if __name__ == "__main__":
    unittest.main()
