from __future__ import annotations

import unittest

from backoffice.integrations import homio_mock
from tests.helpers.api_case import AGENCY_ID, ApiTestCase
from tests.helpers.seed import seed_preferences, seed_proposal, seed_unit


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class BuildingsApiTest(ApiTestCase):
    sandbox_prefix = "buildings_api"

    def setUp(self) -> None:
        super().setUp()
        self.unit = self.seed(seed_unit, AGENCY_ID)

    def _building(self, headers=None) -> dict:
        response = self.client.get(
            f"/api/buildings/{self.unit['building_id']}",
            headers=headers or self.admin["headers"],
        )
        self.assertEqual(response.status_code, 200, response.get_json())
        return response.get_json()["building"]

    def test_list_counts_units_by_status(self) -> None:
        self.seed(seed_unit, AGENCY_ID, building_name="Torre Sul", number="7")

        response = self.client.get("/api/buildings", headers=self.admin["headers"])

        self.assertEqual(response.status_code, 200)
        items = response.get_json()["items"]
        self.assertEqual([item["name"] for item in items], ["Residencial Aurora", "Torre Sul"])
        self.assertEqual(items[0]["total_units"], 1)
        self.assertEqual(items[0]["available_units"], 1)

    def test_other_agency_sees_nothing(self) -> None:
        response = self.client.get("/api/buildings", headers=self.other_admin["headers"])
        self.assertEqual(response.get_json()["items"], [])
        response = self.client.get(f"/api/buildings/{self.unit['building_id']}", headers=self.other_admin["headers"])
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "building_not_found")

    def test_user_needs_open_preference(self) -> None:
        response = self.client.get("/api/buildings", headers=self.user["headers"])
        self.assertEqual(response.status_code, 403)

        self.seed(seed_preferences, AGENCY_ID, can_view_buildings="adminAndUser")
        response = self.client.get("/api/buildings", headers=self.user["headers"])
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()["permissions"]["canManageBuildings"])

        response = self.client.post("/api/buildings", json={"name": "Novo"}, headers=self.user["headers"])
        self.assertEqual(response.status_code, 403)

    def test_building_and_unit_crud(self) -> None:
        created = self.client.post(
            "/api/buildings",
            json={"name": "  Parque das Flores ", "city": "Curitiba"},
            headers=self.admin["headers"],
        )
        self.assertEqual(created.status_code, 201)
        building_id = created.get_json()["id"]

        unit = self.client.post(
            f"/api/buildings/{building_id}/units",
            json={"number": "301", "tower": "B", "grossPriceAmount": "350000,50", "parkingSpots": 2},
            headers=self.admin["headers"],
        )
        self.assertEqual(unit.status_code, 201)
        unit_id = unit.get_json()["id"]

        updated = self.client.put(f"/api/units/{unit_id}", json={"floor": "3"}, headers=self.admin["headers"])
        self.assertEqual(updated.status_code, 200)

        row = self.query_one("SELECT floor, gross_price_amount, parking_spots, status FROM units WHERE id = ?", (unit_id,))
        self.assertEqual(row["floor"], "3")
        self.assertEqual(float(row["gross_price_amount"]), 350000.5)
        self.assertEqual(row["parking_spots"], 2)
        self.assertEqual(row["status"], "available")

        renamed = self.client.put(f"/api/buildings/{building_id}", json={"name": ""}, headers=self.admin["headers"])
        self.assertEqual(renamed.status_code, 400)
        self.assertEqual(renamed.get_json()["error"], "building_name_required")

        empty = self.client.put(f"/api/units/{unit_id}", json={}, headers=self.admin["headers"])
        self.assertEqual(empty.get_json()["error"], "no_changes")

    def test_unit_requires_number_or_name(self) -> None:
        response = self.client.post(
            f"/api/buildings/{self.unit['building_id']}/units",
            json={"tower": "C"},
            headers=self.admin["headers"],
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "unit_required")

    def test_save_rates_recomputes_correction(self) -> None:
        response = self.client.put(
            f"/api/units/{self.unit['unit_id']}/rates",
            json={"rates": [{"year": 2026, "january": 0.01, "february": "1"}]},
            headers=self.admin["headers"],
        )

        self.assertEqual(response.status_code, 200, response.get_json())
        payload = response.get_json()
        self.assertAlmostEqual(payload["priceCorrectionRate"], 0.0201, places=8)
        self.assertEqual(payload["accumulatedDisplay"], "2.01%")
        self.assertEqual(payload["currentValue"], 510050.0)

        unit = self._building()["units"][0]
        self.assertEqual(unit["accumulatedDisplay"], "2.01%")
        self.assertEqual(unit["currentValue"], 510050.0)
        self.assertEqual(unit["rates"][0]["display"]["january"], "1.00%")
        self.assertEqual(unit["rates"][0]["display"]["march"], "-")

    def test_saving_fewer_years_drops_the_rest(self) -> None:
        url = f"/api/units/{self.unit['unit_id']}/rates"
        self.client.put(
            url,
            json={"rates": [{"year": 2025, "december": 0.02}, {"year": 2026, "january": 0.01}]},
            headers=self.admin["headers"],
        )
        response = self.client.put(url, json={"rates": [{"year": 2026, "january": 0.01}]}, headers=self.admin["headers"])

        self.assertEqual(response.get_json()["priceCorrectionRate"], 0.01)
        years = self.query_one(
            "SELECT COUNT(*) AS total FROM monthly_adjustment_rates WHERE unit_id = ?", (self.unit["unit_id"],)
        )
        self.assertEqual(years["total"], 1)

        cleared = self.client.put(url, json={"rates": []}, headers=self.admin["headers"])
        self.assertEqual(cleared.get_json()["accumulatedDisplay"], "-")
        self.assertEqual(cleared.get_json()["currentValue"], 500000.0)

    def test_invalid_rates_are_rejected(self) -> None:
        url = f"/api/units/{self.unit['unit_id']}/rates"
        for body in (
            {"rates": "2026"},
            {"rates": [{"year": "x"}]},
            {"rates": [{"year": 2026, "may": "abc"}]},
            {"rates": [{"year": 2026}, {"year": 2026}]},
        ):
            response = self.client.put(url, json=body, headers=self.admin["headers"])
            self.assertEqual(response.status_code, 400, body)
            self.assertEqual(response.get_json()["error"], "rates_invalid")

    def test_unit_status_change_pushes_webhook(self) -> None:
        response = self.client.patch(
            f"/api/units/{self.unit['unit_id']}/status",
            json={"status": "reservado", "reservedUntil": "2030-02-01"},
            headers=self.admin["headers"],
        )

        self.assertEqual(response.status_code, 200, response.get_json())
        self.assertEqual(response.get_json()["status"], "reservado")
        row = self.query_one("SELECT status, reserved_until FROM units WHERE id = ?", (self.unit["unit_id"],))
        self.assertEqual(row, {"status": "reserved", "reserved_until": "2030-02-01"})
        self.assertEqual(homio_mock.recorded_calls("unit_status")[0]["payload"]["status"], "reservado")

        response = self.client.patch(
            f"/api/units/{self.unit['unit_id']}/status",
            json={"status": "livre"},
            headers=self.admin["headers"],
        )
        self.assertEqual(response.status_code, 200)
        row = self.query_one("SELECT status, reserved_until FROM units WHERE id = ?", (self.unit["unit_id"],))
        self.assertEqual(row, {"status": "available", "reserved_until": None})

    def test_unit_status_validation(self) -> None:
        url = f"/api/units/{self.unit['unit_id']}/status"
        response = self.client.patch(url, json={"status": "bloqueado"}, headers=self.admin["headers"])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["validStatuses"], ["livre", "reservado", "vendido"])

        response = self.client.patch(
            url,
            json={"status": "reservado", "reservedUntil": "fevereiro"},
            headers=self.admin["headers"],
        )
        self.assertEqual(response.get_json()["error"], "reserved_until_invalid")

        response = self.client.patch(url, json={"status": "vendido"}, headers=self.user["headers"])
        self.assertEqual(response.status_code, 403)
        self.assertEqual(homio_mock.recorded_calls("unit_status"), [])

    def test_unit_status_webhook_failure_still_refreshes_detail(self) -> None:
        self.assertEqual(self._building()["units"][0]["status"], "livre")
        homio_mock.fail_next("unit_status", "timeout")

        response = self.client.patch(
            f"/api/units/{self.unit['unit_id']}/status",
            json={"status": "vendido"},
            headers=self.admin["headers"],
        )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json()["webhookMessage"], "timeout")
        self.assertEqual(self._building()["units"][0]["status"], "vendido")

    def test_delete_building_cascades(self) -> None:
        proposal = self.seed(seed_proposal, AGENCY_ID, unit_id=self.unit["unit_id"], created_by=self.admin["id"])
        self.client.put(
            f"/api/units/{self.unit['unit_id']}/rates",
            json={"rates": [{"year": 2026, "january": 0.01}]},
            headers=self.admin["headers"],
        )

        response = self.client.delete(f"/api/buildings/{self.unit['building_id']}", headers=self.admin["headers"])

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["unitsDeleted"], 1)
        self.assertEqual(payload["proposalsDeleted"], 1)
        self.assertIsNone(self.query_one("SELECT id FROM proposals WHERE id = ?", (proposal["proposal_id"],)))
        self.assertIsNone(self.query_one("SELECT id FROM contacts WHERE id = ?", (proposal["contact_id"],)))
        self.assertIsNone(self.query_one("SELECT id FROM units WHERE id = ?", (self.unit["unit_id"],)))
        rates = self.query_one("SELECT COUNT(*) AS total FROM monthly_adjustment_rates WHERE agency_id = ?", (AGENCY_ID,))
        self.assertEqual(rates["total"], 0)

        gone = self.client.get(f"/api/buildings/{self.unit['building_id']}", headers=self.admin["headers"])
        self.assertEqual(gone.status_code, 404)

    def test_delete_unit_from_other_agency_is_not_found(self) -> None:
        response = self.client.delete(f"/api/units/{self.unit['unit_id']}", headers=self.other_admin["headers"])
        self.assertEqual(response.status_code, 404)
        self.assertIsNotNone(self.query_one("SELECT id FROM units WHERE id = ?", (self.unit["unit_id"],)))


class BuildingsCacheExpiryTest(ApiTestCase):
    sandbox_prefix = "buildings_cache"

    def cache_clock(self):
        self.clock = FakeClock()
        return self.clock

    def test_listing_is_cached_until_ttl(self) -> None:
        self.seed(seed_unit, AGENCY_ID)
        first = self.client.get("/api/buildings", headers=self.admin["headers"]).get_json()["items"]
        self.assertEqual(len(first), 1)

        # Written behind the service, so nothing invalidates the cached listing.
        self.seed(seed_unit, AGENCY_ID, building_name="Torre Sul")
        cached = self.client.get("/api/buildings", headers=self.admin["headers"]).get_json()["items"]
        self.assertEqual(len(cached), 1)

        self.clock.now += self.app.config["CACHE_LIST_TTL_SECONDS"]
        fresh = self.client.get("/api/buildings", headers=self.admin["headers"]).get_json()["items"]
        self.assertEqual(len(fresh), 2)

        other = self.client.get("/api/buildings", headers=self.other_admin["headers"]).get_json()["items"]
        self.assertEqual(other, [])


if __name__ == "__main__":
    unittest.main()
