from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping

from backoffice.db import MONTH_COLUMNS


_EIGHT_PLACES = Decimal("0.00000001")
_TWO_PLACES = Decimal("0.01")
_EMPTY_DISPLAY = "-"


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"taxa invalida: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"taxa invalida: {value!r}")
    return result


def round8(value: Any) -> Decimal:
    return _to_decimal(value).quantize(_EIGHT_PLACES, rounding=ROUND_HALF_UP)


def ordered_month_rates(records: Iterable[Mapping[str, Any]]) -> List[Decimal]:
    """Flatten yearly rate rows into one list, ascending year then calendar month."""
    ordered = sorted(records, key=lambda record: int(record["year"]))
    rates: List[Decimal] = []
    for record in ordered:
        for month in MONTH_COLUMNS:
            rates.append(_to_decimal(record.get(month)))
    return rates


def compound_rates(rates: Iterable[Any]) -> float:
    product = Decimal("1")
    for rate in rates:
        product = round8(product * round8(Decimal("1") + round8(rate)))
    return float(round8(product - Decimal("1")))


def compound_monthly_rates(records: Iterable[Mapping[str, Any]]) -> float:
    """Accumulated correction of every monthly rate of a unit.

    Each intermediate product is re-rounded to 8 decimals so the result does
    not depend on float drift.
    """
    return compound_rates(ordered_month_rates(records))


def current_value(gross_price_amount: Any, price_correction_rate: Any) -> float:
    gross = _to_decimal(gross_price_amount)
    rate = _to_decimal(price_correction_rate)
    return float((gross * (Decimal("1") + rate)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def format_accumulated_percentage(value: Any) -> str:
    # Truncate: never show a correction higher than the real one.
    if value is None or value == "" or _to_decimal(value) == 0:
        return _EMPTY_DISPLAY
    percent = (_to_decimal(value) * 100).quantize(_TWO_PLACES, rounding=ROUND_FLOOR)
    return f"{percent}%"


def format_rate(value: Any) -> str:
    if value is None or value == "" or _to_decimal(value) == 0:
        return _EMPTY_DISPLAY
    percent = (_to_decimal(value) * 100).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    return f"{percent}%"


def parse_percentage_input(raw: Any) -> float | None:
    """'0,5' or '0.5%' typed in the rates editor -> 0.005."""
    text = str(raw if raw is not None else "").strip().replace("%", "").replace(",", ".")
    if not text or text == _EMPTY_DISPLAY:
        return None
    return float(round8(_to_decimal(text) / 100))
