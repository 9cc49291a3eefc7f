from __future__ import annotations

import logging
from typing import List

from backoffice.application.crm_sync_service import CrmSyncService
from backoffice.application.unit_status_service import UnitStatusService
from backoffice.cache import TtlCache
from backoffice.domain.contracts import (
    AuthUser,
    BestEffortOutcome,
    ProposalStatusChangeInput,
    ServiceOutput,
)
from backoffice.errors import NotFoundError, ValidationError
from backoffice.infrastructure.repositories import PreferencesRepository, ProposalRepository
from backoffice.policies import require_admin, require_capability, resolve_permissions
from backoffice.proposals.installments import parse_iso_date
from backoffice.proposals.status import (
    plan_unit_cascade,
    proposal_status_from_storage,
    proposal_status_to_storage,
)


logger = logging.getLogger("backoffice")


def _normalize_reserved_until(value: str | None) -> str | None:
    if value is None or not str(value).strip():
        return None
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValidationError(
            code="reserved_until_invalid",
            message_key="reserved_until_invalid",
            details=str(value),
        )
    return parsed


def invalidate_inventory(cache: TtlCache, agency_id: str) -> None:
    """Drop every cached listing an inventory or proposal write can make stale."""
    for entity in ("proposals", "buildings", "building"):
        cache.invalidate(entity, agency_id)


class ProposalStatusService:
    """Moves a proposal between em_analise, aprovada and negada.

    Order of effects:
      1. validate the target status, before any database access;
      2. load the proposal inside the caller's agency and gate on admin role
         plus the agency's manage-proposals preference;
      3. persist the new status;
      4. apply the opted-in unit cascade, which must be confirmed by the unit
         webhook (a failure here surfaces as WEBHOOK_ERROR with the earlier
         writes already committed);
      5. push the best-effort CRM updates, whose failures only become
         ``syncWarnings`` in the response.
    """

    def __init__(
        self,
        *,
        cache: TtlCache,
        unit_status_service: UnitStatusService,
        crm_sync_service: CrmSyncService,
    ) -> None:
        self.cache = cache
        self.unit_status_service = unit_status_service
        self.crm_sync_service = crm_sync_service

    def change_status(self, db, user: AuthUser, change: ProposalStatusChangeInput) -> ServiceOutput:
        storage_status = proposal_status_to_storage(change.status)
        # Only em_analise reads the date, for the unit reservation and the opportunity sync.
        reserved_until = _normalize_reserved_until(change.reserved_until) if change.status == "em_analise" else None

        repository = ProposalRepository(agency_id=user.agency_id)
        proposal = repository.get_by_id(db, change.proposal_id)
        if proposal is None:
            raise NotFoundError(code="proposal_not_found", message_key="proposal_not_found", details=change.proposal_id)

        preferences = PreferencesRepository(agency_id=proposal["agency_id"]).get(db)
        permissions = resolve_permissions(preferences, user.role)
        require_admin(user)
        require_capability(permissions, "can_manage_proposals")

        updated = repository.update_status(db, change.proposal_id, storage_status)
        if updated is None:
            raise NotFoundError(
                code="proposal_not_found_after_update",
                message_key="proposal_not_found_after_update",
                details=change.proposal_id,
            )
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "proposal_status_updated",
            extra={
                "agency_id": user.agency_id,
                "proposal_id": change.proposal_id,
                "status": change.status,
                "update_unit_status": change.update_unit_status,
            },
        )

        plan = plan_unit_cascade(
            change.status,
            update_unit=change.update_unit_status,
            reserved_until=reserved_until,
        )
        if plan.set_reserved_until or plan.clear_reserved_until:
            repository.set_reserved_until(db, change.proposal_id, plan.reserved_until if plan.set_reserved_until else None)
            db.commit()

        unit_id = proposal.get("unit_id")
        if plan.touches_unit and unit_id:
            if plan.set_reserved_until:
                outcome = self.unit_status_service.apply(
                    db,
                    agency_id=user.agency_id,
                    unit_id=unit_id,
                    storage_status=plan.unit_status,
                    reserved_until=plan.reserved_until,
                )
            else:
                outcome = self.unit_status_service.apply(
                    db,
                    agency_id=user.agency_id,
                    unit_id=unit_id,
                    storage_status=plan.unit_status,
                )
            invalidate_inventory(self.cache, user.agency_id)
            outcome.raise_for_failure()

        sync_outcomes: List[BestEffortOutcome] = []
        if change.status == "em_analise":
            sync_outcomes.append(
                self.crm_sync_service.sync_opportunity(
                    db,
                    agency_id=user.agency_id,
                    proposal_id=change.proposal_id,
                    reserved_until_override=reserved_until,
                )
            )
        elif change.status == "aprovada":
            sync_outcomes.append(
                self.crm_sync_service.sync_finance(db, agency_id=user.agency_id, proposal_id=change.proposal_id)
            )

        payload = {
            "id": str(updated["id"]),
            "status": proposal_status_from_storage(updated["status"]),
        }
        warnings = [warning for warning in (outcome.to_warning() for outcome in sync_outcomes) if warning]
        if warnings:
            payload["syncWarnings"] = warnings
        return ServiceOutput(payload)
