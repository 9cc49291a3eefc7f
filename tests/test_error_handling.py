import unittest
from unittest.mock import patch

from backoffice import create_app
from backoffice.config import Config
from backoffice.db import close_db
from backoffice.integrations.homio_client import HomioError
from backoffice.ui_strings import error_message
from tests.helpers.api_case import AGENCY_ID, ApiTestCase
from tests.helpers.temp_db import TempDbSandbox


class ErrorPermissionTest(ApiTestCase):
    sandbox_prefix = "error_perm"

    def test_permission_error_for_unauthenticated_api(self) -> None:
        response = self.client.get("/api/proposals")
        self.assertEqual(response.status_code, 401)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "auth_required")
        self.assertEqual(payload.get("message"), error_message("auth_required"))
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertEqual(response.headers.get("X-Request-Id"), payload["request_id"])
        self.assertNotIn("Traceback", response.get_data(as_text=True))

    def test_forbidden_payload(self) -> None:
        response = self.client.get("/api/buildings", headers=self.user["headers"])
        self.assertEqual(response.status_code, 403)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "permission_denied")
        self.assertEqual(payload.get("message"), error_message("permission_denied"))

    def test_request_id_is_echoed(self) -> None:
        headers = dict(self.admin["headers"])
        headers["X-Request-Id"] = "req-123"
        response = self.client.get("/api/proposals/unknown", headers=headers)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["request_id"], "req-123")

    def test_unknown_route_keeps_http_status(self) -> None:
        response = self.client.get("/api/does-not-exist", headers=self.admin["headers"])
        self.assertEqual(response.status_code, 404)

    def test_unexpected_exception_is_masked(self) -> None:
        with patch("backoffice.application.registry.proposal_service", side_effect=RuntimeError("boom interno")):
            response = self.client.get("/api/proposals", headers=self.admin["headers"])

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        self.assertNotIn("boom interno", response.get_data(as_text=True))

    def test_crm_error_outside_sync_is_bad_gateway(self) -> None:
        with patch("backoffice.application.registry.building_service", side_effect=HomioError("HTTP 503")):
            response = self.client.get("/api/buildings", headers=self.admin["headers"])

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.get_json()["error"], "integration_unavailable")


class PrototypeAuthTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_prototype")
        config = self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=False, PROPAGATE_EXCEPTIONS=False)
        self.app = create_app(config)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_tenant_header_identifies_caller(self) -> None:
        headers = {"X-Tenant-Id": AGENCY_ID, "X-User-Id": "admin-proto", "X-User-Role": "admin"}
        response = self.client.get("/api/preferences", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["role"], "admin")

    def test_missing_tenant_is_unauthenticated(self) -> None:
        response = self.client.get("/api/preferences")
        self.assertEqual(response.status_code, 401)

    def test_unknown_role_falls_back_to_user(self) -> None:
        headers = {"X-Tenant-Id": AGENCY_ID, "X-User-Role": "superuser"}
        response = self.client.get("/api/buildings", headers=headers)
        self.assertEqual(response.status_code, 403)

    def test_health_is_public(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")
        self.assertEqual(payload["homio_mode"], "mock")


if __name__ == "__main__":
    unittest.main()
