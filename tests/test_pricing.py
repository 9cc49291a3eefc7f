import unittest
from decimal import Decimal

from backoffice.db import MONTH_COLUMNS
from backoffice.proposals.pricing import (
    compound_monthly_rates,
    compound_rates,
    current_value,
    format_accumulated_percentage,
    format_rate,
    ordered_month_rates,
    parse_percentage_input,
    round8,
)


def _year(year: int, rate) -> dict:
    record = {"year": year}
    record.update({month: rate for month in MONTH_COLUMNS})
    return record


class CompoundingTest(unittest.TestCase):
    def test_round8_is_half_up(self) -> None:
        self.assertEqual(round8("0.123456785"), Decimal("0.12345679"))
        self.assertEqual(round8(None), Decimal("0E-8"))

    def test_two_months_compound(self) -> None:
        self.assertAlmostEqual(compound_rates([0.01, 0.01]), 0.0201, places=8)

    def test_inputs_are_rounded_before_compounding(self) -> None:
        self.assertEqual(compound_rates([0.123456789]), 0.12345679)

    def test_empty_and_missing_months_do_not_correct(self) -> None:
        self.assertEqual(compound_rates([]), 0.0)
        self.assertEqual(compound_monthly_rates([{"year": 2026}]), 0.0)

    def test_years_are_ordered_before_months(self) -> None:
        later = _year(2027, 0)
        later["january"] = 0.02
        earlier = _year(2026, 0)
        earlier["december"] = 0.01
        rates = ordered_month_rates([later, earlier])
        self.assertEqual(len(rates), 24)
        self.assertEqual(rates[11], Decimal("0.01"))
        self.assertEqual(rates[12], Decimal("0.02"))

    def test_full_year_of_half_percent(self) -> None:
        accumulated = compound_monthly_rates([_year(2026, 0.005)])
        self.assertAlmostEqual(accumulated, 0.06167781, places=6)

    def test_current_value_applies_correction(self) -> None:
        self.assertEqual(current_value(500000, 0.0201), 510050.0)
        self.assertEqual(current_value(None, 0.05), 0.0)
        self.assertEqual(current_value(123456.78, None), 123456.78)


class PercentageDisplayTest(unittest.TestCase):
    def test_accumulated_display_truncates(self) -> None:
        self.assertEqual(format_accumulated_percentage(0.06167781), "6.16%")
        self.assertEqual(format_rate(0.06167781), "6.17%")

    def test_zero_or_missing_shows_dash(self) -> None:
        for value in (None, "", 0, 0.0):
            self.assertEqual(format_accumulated_percentage(value), "-")
            self.assertEqual(format_rate(value), "-")

    def test_parse_typed_percentages(self) -> None:
        self.assertEqual(parse_percentage_input("0,5"), 0.005)
        self.assertEqual(parse_percentage_input("1.25%"), 0.0125)
        self.assertIsNone(parse_percentage_input(""))
        self.assertIsNone(parse_percentage_input("-"))
        with self.assertRaises(ValueError):
            parse_percentage_input("abc")
        for raw in ("NaN", "Infinity"):
            with self.assertRaises(ValueError):
                parse_percentage_input(raw)
        with self.assertRaises(ValueError):
            round8(float("nan"))


if __name__ == "__main__":
    unittest.main()
