import http.client
import unittest
import urllib.error
from unittest.mock import patch

from flask import Flask

from backoffice.integrations import homio_client, homio_mock
from backoffice.observability import metrics_snapshot, reset_metrics_for_tests


def _live_app(**overrides) -> Flask:
    app = Flask(__name__)
    app.config.update(
        HOMIO_MODE="live",
        HOMIO_WEBHOOK_BASE_URL="https://hooks.example.test/webhook/",
        HOMIO_UNIT_WEBHOOK_PATH="/unit/update-status",
        HOMIO_FINANCE_WEBHOOK_PATH="mivita/finance-part",
        HOMIO_OPERATIONS_URL="https://ops.example.test/functions/v1",
        HOMIO_OPERATIONS_API_KEY="key-123",
        HOMIO_TIMEOUT_SECONDS=7,
    )
    app.config.update(overrides)
    return app


class HomioLiveClientTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()
        homio_mock.reset()

    def test_unit_status_requires_explicit_success(self) -> None:
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", return_value={"success": True}) as request_json:
                result = homio_client.push_unit_status(
                    unit_id="u-1",
                    unit_name="Apto 101",
                    status="vendido",
                    agency_id="agency-aurora",
                    building_name="Residencial Aurora",
                )
            self.assertTrue(result.success)
            method, url = request_json.call_args.args[:2]
            self.assertEqual(method, "PUT")
            self.assertEqual(url, "https://hooks.example.test/webhook/unit/update-status")
            self.assertEqual(request_json.call_args.kwargs["payload"]["status"], "vendido")

            with patch.object(homio_client, "_request_json", return_value={}):
                result = homio_client.push_unit_status(
                    unit_id="u-1",
                    unit_name=None,
                    status="livre",
                    agency_id="agency-aurora",
                    building_name=None,
                )
            self.assertFalse(result.success)
            self.assertEqual(result.message, "Webhook nao confirmou a operacao.")

        webhooks = {(item["target"], item["result"]): item["count"] for item in metrics_snapshot()["webhooks"]}
        self.assertEqual(webhooks[("unit_status", "success")], 1)
        self.assertEqual(webhooks[("unit_status", "failure")], 1)

    def test_enrichment_calls_only_fail_on_explicit_failure(self) -> None:
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", return_value={}) as request_json:
                result = homio_client.update_opportunity(
                    agency_id="agency-aurora",
                    opportunity_id="opp-1",
                    custom_fields=[{"id": "cf-1", "field_value": "x"}],
                )
            self.assertTrue(result.success)
            self.assertEqual(request_json.call_args.args[1], "https://ops.example.test/functions/v1/ghl-update-opportunity")
            headers = request_json.call_args.kwargs["headers"]
            self.assertEqual(headers["locationId"], "agency-aurora")
            self.assertEqual(headers["Authorization"], "Bearer key-123")

            with patch.object(homio_client, "_request_json", return_value={"success": False, "error": "quota"}):
                result = homio_client.push_finance_installments(
                    agency_id="agency-aurora",
                    contact_external_id="c-1",
                    installments=[],
                )
            self.assertFalse(result.success)
            self.assertEqual(result.message, "quota")

    def test_transport_errors_become_failed_results(self) -> None:
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", side_effect=homio_client.HomioError("Homio HTTP 503: x")):
                result = homio_client.push_finance_installments(
                    agency_id="agency-aurora",
                    contact_external_id="c-1",
                    installments=[],
                )
        self.assertFalse(result.success)
        self.assertEqual(result.message, "Homio HTTP 503: x")

    def test_missing_endpoint_config_is_a_failure_not_a_crash(self) -> None:
        with _live_app(HOMIO_OPERATIONS_URL=None).app_context():
            result = homio_client.update_opportunity(agency_id="a", opportunity_id="o", custom_fields=[])
        self.assertFalse(result.success)
        self.assertIn("HOMIO_OPERATIONS_URL", result.message)

    def test_invalid_mode_is_reported(self) -> None:
        with _live_app(HOMIO_MODE="staging").app_context():
            result = homio_client.push_unit_status(
                unit_id="u", unit_name="u", status="livre", agency_id="a", building_name=None
            )
        self.assertFalse(result.success)
        self.assertIn("HOMIO_MODE", result.message)

    def test_urlopen_errors_are_wrapped(self) -> None:
        with _live_app().app_context():
            with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("recusada")) as urlopen:
                with self.assertRaises(homio_client.HomioError) as ctx:
                    homio_client._request_json("GET", "https://ops.example.test/x")
            self.assertEqual(urlopen.call_args.kwargs["timeout"], 7)
        self.assertIn("recusada", str(ctx.exception))

    def test_connection_drops_while_reading_are_wrapped(self) -> None:
        failures = (
            http.client.RemoteDisconnected("Remote end closed connection without response"),
            ConnectionResetError(104, "Connection reset by peer"),
            http.client.IncompleteRead(b"{"),
        )
        with _live_app().app_context():
            for failure in failures:
                with patch("urllib.request.urlopen", side_effect=failure):
                    with self.assertRaises(homio_client.HomioError):
                        homio_client._request_json("POST", "https://ops.example.test/x", payload={})

                with patch("urllib.request.urlopen", side_effect=failure):
                    result = homio_client.push_unit_status(
                        unit_id="u-1", unit_name="Apto", status="vendido", agency_id="a", building_name=None
                    )
                self.assertFalse(result.success)

    def test_non_utf8_body_is_wrapped(self) -> None:
        with _live_app().app_context():
            with patch("urllib.request.urlopen") as urlopen:
                urlopen.return_value.__enter__.return_value.read.return_value = b"\xff\xfe"
                with self.assertRaises(homio_client.HomioError):
                    homio_client._request_json("GET", "https://ops.example.test/x")

    def test_fetch_opportunity_live(self) -> None:
        body = {"opportunity": {"id": "opp-9", "name": "Ana - Apto 101", "customFields": []}}
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", return_value=body) as request_json:
                opportunity = homio_client.fetch_opportunity(agency_id="agency-aurora", opportunity_id="opp-9")
            self.assertEqual(opportunity["name"], "Ana - Apto 101")
            method, url = request_json.call_args.args[:2]
            self.assertEqual(method, "POST")
            self.assertEqual(url, "https://ops.example.test/functions/v1/ghl-get-opportunity-by-id")
            self.assertEqual(request_json.call_args.kwargs["payload"], {"opportunityId": "opp-9"})
            self.assertEqual(request_json.call_args.kwargs["headers"]["locationId"], "agency-aurora")

            with patch.object(homio_client, "_request_json", return_value={}):
                with self.assertRaises(homio_client.HomioError):
                    homio_client.fetch_opportunity(agency_id="agency-aurora", opportunity_id="opp-9")

    def test_fetch_custom_fields_live(self) -> None:
        catalog = {"customFields": [{"id": "cf-1", "name": "CPF"}, "lixo"]}
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", return_value=catalog) as request_json:
                fields = homio_client.fetch_custom_fields(agency_id="agency-aurora", model="contact")
            self.assertEqual(fields, [{"id": "cf-1", "name": "CPF"}])
            self.assertTrue(request_json.call_args.args[1].endswith("ghl-get-custom-fields-v1?model=contact"))

            with patch.object(homio_client, "_request_json", return_value={"success": False, "message": "negado"}):
                with self.assertRaises(homio_client.HomioError):
                    homio_client.fetch_custom_fields(agency_id="agency-aurora", model="contact")

    def test_fetch_contact_requires_id(self) -> None:
        with _live_app().app_context():
            with patch.object(homio_client, "_request_json", return_value={"contact": {"name": "Sem id"}}):
                with self.assertRaises(homio_client.HomioError):
                    homio_client.fetch_contact(agency_id="a", contact_id="c-1")
            with patch.object(homio_client, "_request_json", return_value={"id": "c-1", "firstName": "Ana"}):
                self.assertEqual(homio_client.fetch_contact(agency_id="a", contact_id="c-1")["id"], "c-1")


class HomioMockModeTest(unittest.TestCase):
    def setUp(self) -> None:
        homio_mock.reset()

    def tearDown(self) -> None:
        homio_mock.reset()

    def test_mock_mode_never_touches_network(self) -> None:
        app = _live_app(HOMIO_MODE="mock", HOMIO_WEBHOOK_BASE_URL=None)
        with app.app_context():
            with patch.object(homio_client, "_request_json") as request_json:
                result = homio_client.push_unit_status(
                    unit_id="u-1", unit_name="Apto", status="reservado", agency_id="a", building_name="B"
                )
        request_json.assert_not_called()
        self.assertTrue(result.success)
        self.assertEqual(homio_mock.recorded_calls("unit_status")[0]["payload"]["id"], "u-1")

    def test_fail_next_applies_once(self) -> None:
        homio_mock.fail_next("finance", "fora")
        with _live_app(HOMIO_MODE="mock").app_context():
            first = homio_client.push_finance_installments(agency_id="a", contact_external_id="c", installments=[])
            second = homio_client.push_finance_installments(agency_id="a", contact_external_id="c", installments=[])
        self.assertFalse(first.success)
        self.assertEqual(first.message, "fora")
        self.assertTrue(second.success)
        self.assertEqual(len(homio_mock.recorded_calls("finance")), 2)


if __name__ == "__main__":
    unittest.main()
