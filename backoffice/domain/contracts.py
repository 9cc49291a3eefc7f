from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from backoffice.errors import WebhookError


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class AuthUser:
    profile_id: str
    agency_id: str
    role: str
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


ACCESS_LEVELS = ("admin", "adminAndUser")


@dataclass(frozen=True)
class Preferences:
    agency_id: str
    can_view_proposals: str = "admin"
    can_manage_proposals: str = "admin"
    can_view_buildings: str = "admin"
    can_manage_buildings: str = "admin"
    can_manage_only_assined_proposals: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Preferences":
        return cls(
            agency_id=str(row["agency_id"]),
            can_view_proposals=str(row.get("can_view_proposals") or "admin"),
            can_manage_proposals=str(row.get("can_manage_proposals") or "admin"),
            can_view_buildings=str(row.get("can_view_buildings") or "admin"),
            can_manage_buildings=str(row.get("can_manage_buildings") or "admin"),
            can_manage_only_assined_proposals=bool(row.get("can_manage_only_assined_proposals")),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "agencyId": self.agency_id,
            "canViewProposals": self.can_view_proposals,
            "canManageProposals": self.can_manage_proposals,
            "canViewBuildings": self.can_view_buildings,
            "canManageBuildings": self.can_manage_buildings,
            "canManageOnlyAssinedProposals": self.can_manage_only_assined_proposals,
        }


@dataclass(frozen=True)
class ProposalStatusChangeInput:
    proposal_id: str
    status: str
    update_unit_status: bool = False
    reserved_until: str | None = None


@dataclass(frozen=True)
class InstallmentInput:
    condition: str
    amount_per_installment: float
    installments_count: int
    total_amount: float | None = None
    start_date: str | None = None
    dates: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ContactInput:
    name: str
    homio_id: str | None = None


@dataclass(frozen=True)
class ProposalInput:
    opportunity_id: str
    proposal_date: str
    responsible: str
    unit_id: str
    primary_contact: ContactInput
    secondary_contact: ContactInput | None = None
    name: str | None = None
    notes: str | None = None
    reserved_until: str | None = None
    installments: List[InstallmentInput] = field(default_factory=list)


@dataclass(frozen=True)
class UnitStatusChangeInput:
    unit_id: str
    status: str
    reserved_until: str | None = None


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    message: str | None = None
    response: Any = None


@dataclass(frozen=True)
class ConfirmedOutcome:
    """Outcome of a side effect the caller must see fail."""

    target: str
    success: bool
    message: str | None = None

    def raise_for_failure(self) -> None:
        if not self.success:
            raise WebhookError(webhook_message=self.message)


@dataclass(frozen=True)
class BestEffortOutcome:
    """Outcome of an enrichment side effect: recorded, never raised."""

    target: str
    success: bool
    skipped: bool = False
    message: str | None = None

    def log(self, logger: logging.Logger, **extra: Any) -> None:
        if self.success or self.skipped:
            logger.info(
                "crm_sync_done",
                extra={"target": self.target, "skipped": self.skipped, **extra},
            )
            return
        logger.warning(
            "crm_sync_failed",
            extra={"target": self.target, "sync_message": self.message, **extra},
        )

    def to_warning(self) -> Dict[str, Any] | None:
        if self.success or self.skipped:
            return None
        return {"target": self.target, "message": self.message}
