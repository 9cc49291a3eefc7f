import unittest

from backoffice.application.auth_service import AuthService
from backoffice.db import get_db
from backoffice.errors import NotFoundError
from tests.helpers.api_case import AGENCY_ID, ApiTestCase


class BearerTokenAuthTest(ApiTestCase):
    sandbox_prefix = "auth_tokens"
    config_overrides = {"AUTH_TOKENS": "static-admin:admin-aurora, broken-entry ,static-ghost:nobody"}

    def test_seeded_token_authenticates(self) -> None:
        response = self.client.get("/api/preferences", headers=self.admin["headers"])
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["role"], "admin")

    def test_configured_static_token(self) -> None:
        response = self.client.get("/api/preferences", headers={"Authorization": "Bearer static-admin"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["preferences"]["agencyId"], AGENCY_ID)

    def test_static_token_for_unknown_profile_is_rejected(self) -> None:
        response = self.client.get("/api/preferences", headers={"Authorization": "Bearer static-ghost"})
        self.assertEqual(response.status_code, 401)

    def test_non_bearer_scheme_is_rejected(self) -> None:
        response = self.client.get("/api/preferences", headers={"Authorization": f"Basic {self.admin['token']}"})
        self.assertEqual(response.status_code, 401)

    def test_parse_tokens(self) -> None:
        pairs = AuthService._parse_tokens("a:p1; b:p2\nc:p3, :p4, d:")
        self.assertEqual(list(pairs), [("a", "p1"), ("b", "p2"), ("c", "p3")])
        self.assertEqual(list(AuthService._parse_tokens(["x:p9"])), [("x", "p9")])
        self.assertEqual(list(AuthService._parse_tokens(None)), [])


class IssueTokenCliTest(ApiTestCase):
    sandbox_prefix = "auth_cli"

    def test_issue_token_for_profile(self) -> None:
        runner = self.app.test_cli_runner()
        result = runner.invoke(args=["auth", "issue-token", self.user["id"]])

        self.assertEqual(result.exit_code, 0, msg=result.output)
        token = result.output.strip()
        self.assertTrue(token)
        response = self.client.get("/api/preferences", headers={"Authorization": f"Bearer {token}"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["role"], "user")

    def test_issue_token_for_unknown_profile(self) -> None:
        with self.app.app_context():
            with self.assertRaises(NotFoundError):
                AuthService().issue_token(get_db(), "nobody")


if __name__ == "__main__":
    unittest.main()
