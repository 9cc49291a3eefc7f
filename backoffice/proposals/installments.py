from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Tuple

from backoffice.domain.contracts import InstallmentInput


INSTALLMENT_CONDITIONS: Tuple[str, ...] = (
    "sinal",
    "parcela_unica",
    "financiamento",
    "mensais",
    "intermediarias",
    "anuais",
    "semestrais",
    "bimestrais",
    "trimestrais",
)

# Older records were written with singular names.
LEGACY_CONDITION_ALIASES: Dict[str, str] = {
    "mensal": "mensais",
    "anual": "anuais",
}

EXPLICIT_DATES_CONDITION = "intermediarias"
SINGLE_PAYMENT_CONDITIONS = frozenset({"sinal", "parcela_unica"})


def normalize_condition(value: Any) -> str | None:
    condition = str(value or "").strip().lower()
    condition = LEGACY_CONDITION_ALIASES.get(condition, condition)
    return condition if condition in INSTALLMENT_CONDITIONS else None


def parse_iso_date(value: Any) -> str | None:
    raw = str(value or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10]).isoformat()
    except ValueError:
        return None


def _money(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    try:
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) not in (None, ""):
            return raw.get(key)
    return None


def parse_installments(items: Iterable[Any]) -> Tuple[List[InstallmentInput], List[Dict[str, Any]]]:
    """Validate raw installment rows from the payment step.

    Returns parsed installments and a list of ``{index, field, error}`` entries;
    callers must reject the form when the error list is not empty.
    """
    parsed: List[InstallmentInput] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(items or []):
        if not isinstance(raw, dict):
            errors.append({"index": index, "field": "installment", "error": "invalid"})
            continue

        condition = normalize_condition(_first(raw, "condition", "type"))
        if condition is None:
            errors.append({"index": index, "field": "condition", "error": "invalid"})
            continue

        amount = _money(_first(raw, "value", "amountPerInstallment", "amount_per_installment"))
        if amount is None or amount <= 0:
            errors.append({"index": index, "field": "value", "error": "must_be_positive"})
            continue

        try:
            count = int(_first(raw, "quantity", "installmentsCount", "installments_count") or 1)
        except (TypeError, ValueError):
            count = 0
        if count < 1 or (condition in SINGLE_PAYMENT_CONDITIONS and count != 1):
            errors.append({"index": index, "field": "quantity", "error": "invalid"})
            continue

        dates: List[str] = []
        start_date = None
        if condition == EXPLICIT_DATES_CONDITION:
            raw_dates = raw.get("dates") or []
            dates = sorted(filter(None, (parse_iso_date(item) for item in raw_dates)))
            if len(dates) != len(list(raw_dates)) or len(dates) != count:
                errors.append({"index": index, "field": "dates", "error": "must_match_quantity"})
                continue
            start_date = dates[0]
        else:
            raw_start = _first(raw, "date", "startDate", "start_date")
            start_date = parse_iso_date(raw_start)
            if raw_start and start_date is None:
                errors.append({"index": index, "field": "date", "error": "invalid"})
                continue

        total = _money(_first(raw, "totalAmount", "total_amount"))
        if total is None:
            total = (amount * count).quantize(Decimal("0.01"))

        parsed.append(
            InstallmentInput(
                condition=condition,
                amount_per_installment=float(amount),
                installments_count=count,
                total_amount=float(total),
                start_date=start_date,
                dates=dates,
            )
        )
    return parsed, errors


def installments_total(amounts: Iterable[Any]) -> float:
    total = sum((_money(amount) or Decimal("0") for amount in amounts), Decimal("0"))
    return float(total.quantize(Decimal("0.01")))


def finance_installment_payload(installment: Dict[str, Any], dates: List[str]) -> Dict[str, Any]:
    """Shape one stored installment for the finance webhook."""
    condition = normalize_condition(installment.get("condition")) or str(installment.get("condition") or "")
    payload: Dict[str, Any] = {
        "id": installment["id"],
        "condition": condition,
        "value": float(installment.get("amount_per_installment") or 0),
        "quantity": int(installment.get("installments_count") or 0),
        "date": str(installment.get("start_date") or (dates[0] if dates else "") or ""),
    }
    if condition == EXPLICIT_DATES_CONDITION:
        payload["dates"] = [str(item) for item in dates]
    if installment.get("total_amount") is not None:
        payload["totalAmount"] = float(installment["total_amount"])
    return payload
