from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from backoffice.domain.contracts import BestEffortOutcome
from backoffice.errors import AppError
from backoffice.infrastructure.repositories import (
    ContactRepository,
    InstallmentRepository,
    ProposalRepository,
)
from backoffice.integrations import homio_client
from backoffice.integrations.custom_fields import opportunity_sync_fields
from backoffice.proposals.installments import finance_installment_payload


logger = logging.getLogger("backoffice")


class CrmSyncService:
    """Enrichment pushes to the CRM.

    Failures here never undo or fail the local write that triggered them: each
    call returns a BestEffortOutcome that is logged and surfaced as a warning.
    """

    def __init__(
        self,
        config_loader: Callable[[Any, str], Dict[str, Any] | None],
        update_opportunity_fn: Callable[..., Any] | None = None,
        push_finance_fn: Callable[..., Any] | None = None,
    ) -> None:
        self.config_loader = config_loader
        self.update_opportunity_fn = update_opportunity_fn or homio_client.update_opportunity
        self.push_finance_fn = push_finance_fn or homio_client.push_finance_installments

    def sync_opportunity(
        self,
        db,
        *,
        agency_id: str,
        proposal_id: str,
        reserved_until_override: str | None = None,
    ) -> BestEffortOutcome:
        try:
            outcome = self._sync_opportunity(db, agency_id, proposal_id, reserved_until_override)
        except (AppError, homio_client.HomioError) as exc:
            outcome = BestEffortOutcome(target="opportunity", success=False, message=str(exc))
        outcome.log(logger, agency_id=agency_id, proposal_id=proposal_id)
        return outcome

    def sync_finance(self, db, *, agency_id: str, proposal_id: str) -> BestEffortOutcome:
        try:
            outcome = self._sync_finance(db, agency_id, proposal_id)
        except (AppError, homio_client.HomioError) as exc:
            outcome = BestEffortOutcome(target="finance", success=False, message=str(exc))
        outcome.log(logger, agency_id=agency_id, proposal_id=proposal_id)
        return outcome

    def _sync_opportunity(
        self,
        db,
        agency_id: str,
        proposal_id: str,
        reserved_until_override: str | None,
    ) -> BestEffortOutcome:
        context = ProposalRepository(agency_id=agency_id).get_sync_context(db, proposal_id)
        if not context or not str(context.get("opportunity_id") or "").strip():
            return BestEffortOutcome(target="opportunity", success=False, skipped=True, message="sem oportunidade")

        config = self.config_loader(db, agency_id)
        values = {
            "building": context.get("building_name"),
            "unit": context.get("unit_name") or context.get("unit_number"),
            "responsible": context.get("responsible"),
            "observations": context.get("notes"),
            "reserve_until": reserved_until_override or context.get("reserved_until"),
        }
        custom_fields = opportunity_sync_fields(config, values)
        if not custom_fields:
            return BestEffortOutcome(target="opportunity", success=False, skipped=True, message="sem campos mapeados")

        result = self.update_opportunity_fn(
            agency_id=agency_id,
            opportunity_id=str(context["opportunity_id"]).strip(),
            custom_fields=custom_fields,
        )
        return BestEffortOutcome(target="opportunity", success=bool(result.success), message=result.message)

    def _sync_finance(self, db, agency_id: str, proposal_id: str) -> BestEffortOutcome:
        proposal = ProposalRepository(agency_id=agency_id).get_by_id(db, proposal_id)
        contact = None
        if proposal and proposal.get("primary_contact_id"):
            contact = ContactRepository(agency_id=agency_id).get_by_id(db, proposal["primary_contact_id"])
        external_id = str((contact or {}).get("homio_id") or "").strip()
        if not external_id:
            return BestEffortOutcome(target="finance", success=False, skipped=True, message="contato sem homio_id")

        installment_repository = InstallmentRepository(agency_id=agency_id)
        installments = [
            finance_installment_payload(row, installment_repository.list_dates(db, row["id"]))
            for row in installment_repository.list_for_proposal(db, proposal_id)
        ]
        result = self.push_finance_fn(
            agency_id=agency_id,
            contact_external_id=external_id,
            installments=installments,
        )
        return BestEffortOutcome(target="finance", success=bool(result.success), message=result.message)
