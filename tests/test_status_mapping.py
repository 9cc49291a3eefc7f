import unittest

from backoffice.errors import ValidationError
from backoffice.proposals.status import (
    VALID_PROPOSAL_STATUSES,
    plan_unit_cascade,
    proposal_status_from_storage,
    proposal_status_to_storage,
    unit_status_from_storage,
    unit_status_to_storage,
)


class StatusMappingTest(unittest.TestCase):
    def test_proposal_status_round_trip(self) -> None:
        self.assertEqual(proposal_status_to_storage("em_analise"), "under_review")
        self.assertEqual(proposal_status_to_storage("aprovada"), "approved")
        self.assertEqual(proposal_status_to_storage("negada"), "denied")
        for status in VALID_PROPOSAL_STATUSES:
            self.assertEqual(proposal_status_from_storage(proposal_status_to_storage(status)), status)

    def test_unit_status_mapping(self) -> None:
        self.assertEqual(unit_status_to_storage("livre"), "available")
        self.assertEqual(unit_status_to_storage("reservado"), "reserved")
        self.assertEqual(unit_status_to_storage("vendido"), "sold")
        self.assertEqual(unit_status_from_storage("sold"), "vendido")

    def test_blank_status_is_required(self) -> None:
        for value in (None, "", "   "):
            with self.assertRaises(ValidationError) as ctx:
                proposal_status_to_storage(value)
            self.assertEqual(ctx.exception.code, "status_required")
            self.assertEqual(ctx.exception.http_status, 400)

    def test_unknown_status_carries_valid_list(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            proposal_status_to_storage("vendida")
        self.assertEqual(ctx.exception.code, "status_invalid")
        self.assertEqual(ctx.exception.payload["validStatuses"], ["em_analise", "aprovada", "negada"])

        with self.assertRaises(ValidationError) as ctx:
            unit_status_to_storage("bloqueado")
        self.assertEqual(ctx.exception.payload["validStatuses"], ["livre", "reservado", "vendido"])

    def test_unknown_storage_value_is_a_programming_error(self) -> None:
        with self.assertRaises(ValueError):
            proposal_status_from_storage("cancelled")
        with self.assertRaises(ValueError):
            unit_status_from_storage(None)


class UnitCascadePlanTest(unittest.TestCase):
    def test_no_cascade_without_opt_in(self) -> None:
        plan = plan_unit_cascade("aprovada", update_unit=False, reserved_until=None)
        self.assertFalse(plan.touches_unit)
        self.assertFalse(plan.clear_reserved_until)

    def test_approved_sells_and_denied_frees(self) -> None:
        self.assertEqual(plan_unit_cascade("aprovada", update_unit=True, reserved_until=None).unit_status, "sold")
        self.assertEqual(plan_unit_cascade("negada", update_unit=True, reserved_until=None).unit_status, "available")

    def test_review_with_date_reserves(self) -> None:
        plan = plan_unit_cascade("em_analise", update_unit=True, reserved_until="2030-05-01")
        self.assertEqual(plan.unit_status, "reserved")
        self.assertEqual(plan.reserved_until, "2030-05-01")
        self.assertTrue(plan.set_reserved_until)

    def test_review_without_date_only_clears(self) -> None:
        plan = plan_unit_cascade("em_analise", update_unit=True, reserved_until="  ")
        self.assertFalse(plan.touches_unit)
        self.assertTrue(plan.clear_reserved_until)


if __name__ == "__main__":
    unittest.main()
