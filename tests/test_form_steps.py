import unittest
from datetime import date

from backoffice.proposals.form_steps import (
    STEP_KEYS,
    can_enter_step,
    check_status_change_request,
    first_invalid_step,
    validate_form,
    validate_step,
)
from backoffice.proposals.installments import installments_total, normalize_condition, parse_installments


def _complete_form() -> dict:
    return {
        "opportunityId": "opp-1",
        "proposalDate": "2026-10-01",
        "responsible": "Corretor Joao",
        "primaryContact": {"name": "Maria Souza", "homioId": "homio-contact-1"},
        "unitId": "unit-1",
        "installments": [
            {"condition": "sinal", "value": 50000, "quantity": 1, "date": "2026-11-01"},
            {"condition": "mensais", "value": "1500.50", "quantity": 10, "date": "2026-12-01"},
        ],
    }


class WizardStepsTest(unittest.TestCase):
    def test_complete_form_is_valid(self) -> None:
        form = _complete_form()
        self.assertEqual(validate_form(form), {})
        self.assertIsNone(first_invalid_step(form))
        self.assertTrue(can_enter_step("installments", form))

    def test_required_fields_block_later_steps(self) -> None:
        form = _complete_form()
        form["responsible"] = "  "
        self.assertEqual(validate_step("proposal", form), [{"field": "responsible", "error": "required"}])
        self.assertEqual(first_invalid_step(form), "proposal")
        self.assertTrue(can_enter_step("proposal", form))
        self.assertFalse(can_enter_step("primary_contact", form))

    def test_invalid_proposal_date(self) -> None:
        form = _complete_form()
        form["proposalDate"] = "01/10/2026"
        self.assertIn({"field": "proposalDate", "error": "invalid"}, validate_step("proposal", form))

    def test_secondary_contact_is_optional_until_started(self) -> None:
        form = _complete_form()
        form["secondaryContact"] = {"name": "", "homioId": ""}
        self.assertEqual(validate_step("secondary_contact", form), [])
        form["secondaryContact"] = {"name": "", "homioId": "homio-2"}
        self.assertEqual(
            validate_step("secondary_contact", form),
            [{"field": "secondaryContact.name", "error": "required"}],
        )

    def test_property_accepts_unit_reference(self) -> None:
        form = _complete_form()
        form.pop("unitId")
        self.assertEqual(validate_step("property", form), [{"field": "unitId", "error": "required"}])
        form.update({"buildingId": "b-1", "unitNumber": "101"})
        self.assertEqual(validate_step("property", form), [])

    def test_installment_errors_are_indexed(self) -> None:
        form = _complete_form()
        form["installments"][1]["value"] = 0
        self.assertEqual(
            validate_form(form),
            {"installments": [{"field": "installments[1].value", "error": "must_be_positive"}]},
        )

    def test_unknown_step(self) -> None:
        self.assertEqual(STEP_KEYS[0], "proposal")
        with self.assertRaises(ValueError):
            validate_step("payment", {})


class InstallmentParsingTest(unittest.TestCase):
    def test_parses_and_totals(self) -> None:
        parsed, errors = parse_installments(_complete_form()["installments"])
        self.assertEqual(errors, [])
        self.assertEqual(parsed[1].total_amount, 15005.0)
        self.assertEqual(installments_total(item.total_amount for item in parsed), 65005.0)
        self.assertEqual(installments_total([None, "", 10.005]), 10.01)

    def test_non_finite_amounts_are_rejected(self) -> None:
        for raw in ("NaN", "nan", "Infinity", "-inf", float("nan"), "1e999999"):
            _, errors = parse_installments([{"condition": "mensais", "value": raw, "quantity": 2}])
            self.assertEqual(errors, [{"index": 0, "field": "value", "error": "must_be_positive"}], raw)

        parsed, errors = parse_installments([{"condition": "sinal", "value": 100, "totalAmount": "NaN"}])
        self.assertEqual(errors, [])
        self.assertEqual(parsed[0].total_amount, 100.0)

    def test_legacy_condition_names(self) -> None:
        self.assertEqual(normalize_condition("Mensal"), "mensais")
        self.assertEqual(normalize_condition("anual"), "anuais")
        self.assertIsNone(normalize_condition("quinzenal"))

    def test_single_payment_needs_quantity_one(self) -> None:
        _, errors = parse_installments([{"condition": "sinal", "value": 100, "quantity": 2}])
        self.assertEqual(errors, [{"index": 0, "field": "quantity", "error": "invalid"}])

    def test_intermediate_payments_need_one_date_each(self) -> None:
        parsed, errors = parse_installments(
            [{"condition": "intermediarias", "value": 1000, "quantity": 2, "dates": ["2027-07-10", "2027-01-10"]}]
        )
        self.assertEqual(errors, [])
        self.assertEqual(parsed[0].dates, ["2027-01-10", "2027-07-10"])
        self.assertEqual(parsed[0].start_date, "2027-01-10")

        _, errors = parse_installments(
            [{"condition": "intermediarias", "value": 1000, "quantity": 3, "dates": ["2027-01-10"]}]
        )
        self.assertEqual(errors[0]["error"], "must_match_quantity")


class StatusChangeCheckTest(unittest.TestCase):
    TODAY = date(2026, 10, 19)

    def _check(self, status, update_unit_status=False, reserved_until=None):
        return check_status_change_request(
            status,
            update_unit_status=update_unit_status,
            reserved_until=reserved_until,
            today=self.TODAY,
        )

    def test_status_is_required_and_known(self) -> None:
        self.assertEqual(self._check("").error_key, "status_required")
        self.assertEqual(self._check("cancelada").error_key, "status_invalid")
        self.assertTrue(self._check("aprovada", True).ok)

    def test_keeping_reservation_needs_future_date(self) -> None:
        self.assertEqual(self._check("em_analise", True, None).error_key, "reserved_until_required")
        self.assertEqual(self._check("em_analise", True, "2026-10-19").error_key, "reserved_until_invalid")
        self.assertEqual(self._check("em_analise", True, "amanha").error_key, "reserved_until_invalid")
        self.assertTrue(self._check("em_analise", True, "2026-10-20").ok)

    def test_review_without_cascade_needs_no_date(self) -> None:
        self.assertTrue(self._check("em_analise", False, None).ok)


if __name__ == "__main__":
    unittest.main()
