from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

from backoffice.errors import ValidationError


# Proposal statuses: external (API/CRM) vocabulary -> storage vocabulary.
PROPOSAL_STATUS_TO_STORAGE: Dict[str, str] = {
    "em_analise": "under_review",
    "aprovada": "approved",
    "negada": "denied",
}
PROPOSAL_STATUS_FROM_STORAGE: Dict[str, str] = {
    storage: external for external, storage in PROPOSAL_STATUS_TO_STORAGE.items()
}

UNIT_STATUS_TO_STORAGE: Dict[str, str] = {
    "livre": "available",
    "reservado": "reserved",
    "vendido": "sold",
}
UNIT_STATUS_FROM_STORAGE: Dict[str, str] = {
    storage: external for external, storage in UNIT_STATUS_TO_STORAGE.items()
}

VALID_PROPOSAL_STATUSES: List[str] = list(PROPOSAL_STATUS_TO_STORAGE)
VALID_UNIT_STATUSES: List[str] = list(UNIT_STATUS_TO_STORAGE)


# Unit status each proposal status cascades to when the caller opts in.
UNIT_CASCADE: Dict[str, Dict[str, object]] = {
    "aprovada": {"unit_status": "sold", "requires_date": False},
    "negada": {"unit_status": "available", "requires_date": False},
    "em_analise": {"unit_status": "reserved", "requires_date": True},
}


def _invalid_status(value: object, valid: List[str]) -> ValidationError:
    return ValidationError(
        code="status_invalid",
        message_key="status_invalid",
        http_status=400,
        details=f"status invalido: {value}",
        payload={"validStatuses": list(valid)},
    )


def proposal_status_to_storage(status: str | None) -> str:
    normalized = str(status or "").strip()
    if not normalized:
        raise ValidationError(code="status_required", message_key="status_required", http_status=400)
    if normalized not in PROPOSAL_STATUS_TO_STORAGE:
        raise _invalid_status(status, VALID_PROPOSAL_STATUSES)
    return PROPOSAL_STATUS_TO_STORAGE[normalized]


def proposal_status_from_storage(status: str | None) -> str:
    normalized = str(status or "").strip()
    if normalized not in PROPOSAL_STATUS_FROM_STORAGE:
        raise ValueError(f"status de proposta desconhecido no banco: {status!r}")
    return PROPOSAL_STATUS_FROM_STORAGE[normalized]


def unit_status_to_storage(status: str | None) -> str:
    normalized = str(status or "").strip()
    if not normalized:
        raise ValidationError(code="status_required", message_key="status_required", http_status=400)
    if normalized not in UNIT_STATUS_TO_STORAGE:
        raise _invalid_status(status, VALID_UNIT_STATUSES)
    return UNIT_STATUS_TO_STORAGE[normalized]


def unit_status_from_storage(status: str | None) -> str:
    normalized = str(status or "").strip()
    if normalized not in UNIT_STATUS_FROM_STORAGE:
        raise ValueError(f"status de unidade desconhecido no banco: {status!r}")
    return UNIT_STATUS_FROM_STORAGE[normalized]


@dataclass(frozen=True)
class UnitCascadePlan:
    unit_status: str | None = None
    reserved_until: str | None = None
    set_reserved_until: bool = False
    clear_reserved_until: bool = False

    @property
    def touches_unit(self) -> bool:
        return self.unit_status is not None


def plan_unit_cascade(status: str, *, update_unit: bool, reserved_until: str | None) -> UnitCascadePlan:
    """Side effects owed by a proposal moving to ``status`` (external vocabulary).

    em_analise only reserves the unit when a date is supplied; without one the
    stored reservation date is cleared instead.
    """
    if not update_unit:
        return UnitCascadePlan()
    rule = UNIT_CASCADE.get(status)
    if rule is None:
        return UnitCascadePlan()
    date = str(reserved_until or "").strip() or None
    if rule["requires_date"]:
        if date:
            return UnitCascadePlan(
                unit_status=str(rule["unit_status"]),
                reserved_until=date,
                set_reserved_until=True,
            )
        return UnitCascadePlan(clear_reserved_until=True)
    return UnitCascadePlan(unit_status=str(rule["unit_status"]))
