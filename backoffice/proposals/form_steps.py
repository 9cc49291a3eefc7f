from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List

from backoffice.proposals.installments import parse_installments, parse_iso_date
from backoffice.proposals.status import VALID_PROPOSAL_STATUSES


# Proposal wizard, in display order. A step can only be entered once every
# previous step validates.
WIZARD_STEPS: List[Dict[str, Any]] = [
    {"key": "proposal", "required": ["opportunityId", "proposalDate", "responsible"]},
    {"key": "primary_contact", "required": ["primaryContact.name"]},
    {"key": "secondary_contact", "required": [], "optional": True},
    {"key": "property", "required": []},
    {"key": "installments", "required": []},
]

STEP_KEYS: List[str] = [step["key"] for step in WIZARD_STEPS]


def _lookup(form: Dict[str, Any], dotted: str) -> Any:
    value: Any = form
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_step(step_key: str, form: Dict[str, Any]) -> List[Dict[str, Any]]:
    step = next((item for item in WIZARD_STEPS if item["key"] == step_key), None)
    if step is None:
        raise ValueError(f"etapa desconhecida: {step_key}")

    errors = [
        {"field": field, "error": "required"}
        for field in step["required"]
        if _blank(_lookup(form, field))
    ]

    if step_key == "proposal":
        raw_date = form.get("proposalDate")
        if not _blank(raw_date) and parse_iso_date(raw_date) is None:
            errors.append({"field": "proposalDate", "error": "invalid"})
    elif step_key == "secondary_contact":
        secondary = form.get("secondaryContact")
        if isinstance(secondary, dict) and any(not _blank(value) for value in secondary.values()):
            if _blank(secondary.get("name")):
                errors.append({"field": "secondaryContact.name", "error": "required"})
    elif step_key == "property":
        has_unit_id = not _blank(form.get("unitId"))
        has_unit_ref = not _blank(form.get("buildingId")) and not _blank(form.get("unitNumber"))
        if not has_unit_id and not has_unit_ref:
            errors.append({"field": "unitId", "error": "required"})
        raw_reserved = form.get("reservedUntil")
        if not _blank(raw_reserved) and parse_iso_date(raw_reserved) is None:
            errors.append({"field": "reservedUntil", "error": "invalid"})
    elif step_key == "installments":
        _, installment_errors = parse_installments(form.get("installments") or [])
        for error in installment_errors:
            errors.append(
                {
                    "field": f"installments[{error['index']}].{error['field']}",
                    "error": error["error"],
                }
            )
    return errors


def validate_form(form: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Errors per step; steps without errors are omitted."""
    result: Dict[str, List[Dict[str, Any]]] = {}
    for key in STEP_KEYS:
        errors = validate_step(key, form)
        if errors:
            result[key] = errors
    return result


def first_invalid_step(form: Dict[str, Any]) -> str | None:
    for key in STEP_KEYS:
        if validate_step(key, form):
            return key
    return None


def can_enter_step(step_key: str, form: Dict[str, Any]) -> bool:
    index = STEP_KEYS.index(step_key)
    return all(not validate_step(key, form) for key in STEP_KEYS[:index])


@dataclass(frozen=True)
class StatusChangeCheck:
    ok: bool
    error_key: str | None = None


def check_status_change_request(
    status: str | None,
    *,
    update_unit_status: bool,
    reserved_until: str | None,
    today: date | None = None,
) -> StatusChangeCheck:
    """Pre-flight check run before a status change request is sent.

    Keeping a unit reserved while moving the proposal back to em_analise needs
    a reservation date strictly after today.
    """
    if _blank(status):
        return StatusChangeCheck(False, "status_required")
    if status not in VALID_PROPOSAL_STATUSES:
        return StatusChangeCheck(False, "status_invalid")
    if status != "em_analise" or not update_unit_status:
        return StatusChangeCheck(True)

    if _blank(reserved_until):
        return StatusChangeCheck(False, "reserved_until_required")
    parsed = parse_iso_date(reserved_until)
    reference = today or date.today()
    if parsed is None or date.fromisoformat(parsed) <= reference:
        return StatusChangeCheck(False, "reserved_until_invalid")
    return StatusChangeCheck(True)
