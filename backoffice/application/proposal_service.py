from __future__ import annotations

import logging
from typing import Any, Dict, List

from backoffice.application.crm_sync_service import CrmSyncService
from backoffice.application.proposal_status_service import invalidate_inventory
from backoffice.application.unit_status_service import UnitStatusService
from backoffice.cache import TtlCache
from backoffice.domain.contracts import AuthUser, ContactInput, ProposalInput, ServiceOutput
from backoffice.errors import NotFoundError, ValidationError
from backoffice.infrastructure.repositories import (
    ContactRepository,
    InstallmentRepository,
    PreferencesRepository,
    ProposalRepository,
    UnitRepository,
)
from backoffice.policies import PermissionSet, require_capability, require_owner, resolve_permissions
from backoffice.proposals.form_steps import validate_form
from backoffice.proposals.installments import installments_total, parse_installments, parse_iso_date
from backoffice.proposals.status import (
    proposal_status_from_storage,
    unit_status_from_storage,
    unit_status_to_storage,
)
from backoffice.ui_strings import installment_label, status_label


logger = logging.getLogger("backoffice")


def _text(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _contact_input(raw: Any) -> ContactInput | None:
    if not isinstance(raw, dict):
        return None
    name = _text(raw.get("name"))
    if not name:
        return None
    return ContactInput(name=name, homio_id=_text(raw.get("homioId") or raw.get("homio_id") or raw.get("id")))


def _external_status(storage_status: Any) -> str:
    try:
        return proposal_status_from_storage(storage_status)
    except ValueError:
        return str(storage_status or "")


class ProposalService:
    def __init__(
        self,
        *,
        cache: TtlCache,
        unit_status_service: UnitStatusService,
        crm_sync_service: CrmSyncService,
        ttl_seconds: int = 300,
    ) -> None:
        self.cache = cache
        self.unit_status_service = unit_status_service
        self.crm_sync_service = crm_sync_service
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def permissions_for(db, user: AuthUser) -> PermissionSet:
        return resolve_permissions(PreferencesRepository(agency_id=user.agency_id).get(db), user.role)

    def list_proposals(self, db, user: AuthUser) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_view_proposals")

        created_by = user.profile_id if permissions.restrict_to_creator else None
        scope = f"creator:{created_by}" if created_by else "all"
        repository = ProposalRepository(agency_id=user.agency_id)
        rows = self.cache.get_or_load(
            "proposals",
            user.agency_id,
            scope,
            lambda: repository.list_match(db, created_by=created_by),
            ttl_seconds=self.ttl_seconds,
        )
        items = []
        for row in rows:
            status = _external_status(row.get("status"))
            items.append({**row, "status": status, "statusLabel": status_label("proposta", status)})
        return ServiceOutput({"items": items, "permissions": permissions.to_payload()})

    def get_proposal(self, db, user: AuthUser, proposal_id: str) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_view_proposals")
        proposal = self._load(db, user, proposal_id)
        require_owner(user, permissions, proposal.get("created_by"))
        return ServiceOutput({"proposal": self._detail(db, user.agency_id, proposal)})

    def create_proposal(self, db, user: AuthUser, form: Dict[str, Any]) -> ServiceOutput:
        proposal_input = self._parse_form(db, user, form)
        repository = ProposalRepository(agency_id=user.agency_id)
        contacts = ContactRepository(agency_id=user.agency_id)

        primary_id = contacts.upsert(db, proposal_input.primary_contact)
        secondary_id = None
        if proposal_input.secondary_contact is not None:
            secondary_id = contacts.upsert(db, proposal_input.secondary_contact)

        proposal_id = repository.create(
            db,
            created_by=user.profile_id,
            fields=self._fields(proposal_input, primary_id, secondary_id),
        )
        self._write_installments(db, user.agency_id, proposal_id, proposal_input)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "proposal_created",
            extra={
                "agency_id": user.agency_id,
                "proposal_id": proposal_id,
                "unit_id": proposal_input.unit_id,
                "installments": len(proposal_input.installments),
            },
        )

        if proposal_input.reserved_until:
            outcome = self.unit_status_service.apply(
                db,
                agency_id=user.agency_id,
                unit_id=proposal_input.unit_id,
                storage_status=unit_status_to_storage("reservado"),
                reserved_until=proposal_input.reserved_until,
            )
            invalidate_inventory(self.cache, user.agency_id)
            outcome.raise_for_failure()

        sync = self.crm_sync_service.sync_opportunity(db, agency_id=user.agency_id, proposal_id=proposal_id)
        payload: Dict[str, Any] = {"id": proposal_id, "status": "em_analise"}
        warning = sync.to_warning()
        if warning:
            payload["syncWarnings"] = [warning]
        return ServiceOutput(payload, status_code=201)

    def update_proposal(self, db, user: AuthUser, proposal_id: str, form: Dict[str, Any]) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_manage_proposals")
        proposal = self._load(db, user, proposal_id)
        require_owner(user, permissions, proposal.get("created_by"))

        proposal_input = self._parse_form(db, user, form)
        contacts = ContactRepository(agency_id=user.agency_id)
        primary_id = contacts.upsert(db, proposal_input.primary_contact)
        secondary_id = None
        if proposal_input.secondary_contact is not None:
            secondary_id = contacts.upsert(db, proposal_input.secondary_contact)

        ProposalRepository(agency_id=user.agency_id).update(
            db,
            proposal_id,
            self._fields(proposal_input, primary_id, secondary_id),
        )
        InstallmentRepository(agency_id=user.agency_id).delete_for_proposal(db, proposal_id)
        self._write_installments(db, user.agency_id, proposal_id, proposal_input)

        stale_contacts = {proposal.get("primary_contact_id"), proposal.get("secondary_contact_id")} - {
            primary_id,
            secondary_id,
        }
        self._delete_orphan_contacts(db, user.agency_id, stale_contacts)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info("proposal_updated", extra={"agency_id": user.agency_id, "proposal_id": proposal_id})
        return ServiceOutput({"id": proposal_id, "status": _external_status(proposal.get("status"))})

    def delete_proposal(self, db, user: AuthUser, proposal_id: str) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_manage_proposals")
        proposal = self._load(db, user, proposal_id)
        require_owner(user, permissions, proposal.get("created_by"))

        summary = self.delete_cascade(db, user.agency_id, proposal)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info("proposal_deleted", extra={"agency_id": user.agency_id, "proposal_id": proposal_id, **summary})
        return ServiceOutput({"id": proposal_id, "deleted": True, **summary})

    @classmethod
    def delete_cascade(cls, db, agency_id: str, proposal: Dict[str, Any]) -> Dict[str, int]:
        """Remove installments (with their dates), the proposal and contacts left without proposals.

        Does not commit.
        """
        proposal_id = str(proposal["id"])
        installments_deleted = InstallmentRepository(agency_id=agency_id).delete_for_proposal(db, proposal_id)
        ProposalRepository(agency_id=agency_id).delete(db, proposal_id)
        contacts_deleted = cls._delete_orphan_contacts(
            db,
            agency_id,
            {proposal.get("primary_contact_id"), proposal.get("secondary_contact_id")},
        )
        return {"installments_deleted": installments_deleted, "contacts_deleted": contacts_deleted}

    @staticmethod
    def _delete_orphan_contacts(db, agency_id: str, contact_ids: set) -> int:
        proposals = ProposalRepository(agency_id=agency_id)
        contacts = ContactRepository(agency_id=agency_id)
        deleted = 0
        for contact_id in sorted(str(item) for item in contact_ids if item):
            if proposals.count_contact_references(db, contact_id) == 0 and contacts.delete(db, contact_id):
                deleted += 1
        return deleted

    def _load(self, db, user: AuthUser, proposal_id: str) -> Dict[str, Any]:
        proposal = ProposalRepository(agency_id=user.agency_id).get_by_id(db, proposal_id)
        if proposal is None:
            raise NotFoundError(code="proposal_not_found", message_key="proposal_not_found", details=proposal_id)
        return proposal

    def _parse_form(self, db, user: AuthUser, form: Dict[str, Any]) -> ProposalInput:
        if not isinstance(form, dict):
            raise ValidationError(code="payload_invalid", message_key="payload_invalid")
        step_errors = validate_form(form)
        if step_errors:
            raise ValidationError(
                code="form_invalid",
                message_key="form_invalid",
                payload={"fieldErrors": step_errors},
            )
        installments, _ = parse_installments(form.get("installments") or [])
        unit = self._resolve_unit(db, user, form)
        return ProposalInput(
            opportunity_id=str(form["opportunityId"]).strip(),
            proposal_date=parse_iso_date(form["proposalDate"]) or "",
            responsible=str(form["responsible"]).strip(),
            unit_id=str(unit["id"]),
            primary_contact=_contact_input(form.get("primaryContact")),
            secondary_contact=_contact_input(form.get("secondaryContact")),
            name=_text(form.get("name")),
            notes=_text(form.get("notes")),
            reserved_until=parse_iso_date(form.get("reservedUntil")),
            installments=installments,
        )

    @staticmethod
    def _resolve_unit(db, user: AuthUser, form: Dict[str, Any]) -> Dict[str, Any]:
        units = UnitRepository(agency_id=user.agency_id)
        unit_id = _text(form.get("unitId"))
        if unit_id:
            unit = units.get_by_id(db, unit_id)
        else:
            unit = units.find_by_number(
                db,
                str(form.get("buildingId")).strip(),
                str(form.get("unitNumber")).strip(),
                tower=_text(form.get("tower")),
            )
        if unit is None:
            raise NotFoundError(code="unit_not_found", message_key="unit_not_found", details=unit_id)
        return unit

    @staticmethod
    def _fields(proposal_input: ProposalInput, primary_id: str, secondary_id: str | None) -> Dict[str, Any]:
        return {
            "unit_id": proposal_input.unit_id,
            "primary_contact_id": primary_id,
            "secondary_contact_id": secondary_id,
            "opportunity_id": proposal_input.opportunity_id,
            "name": proposal_input.name,
            "proposal_date": proposal_input.proposal_date,
            "reserved_until": proposal_input.reserved_until,
            "responsible": proposal_input.responsible,
            "notes": proposal_input.notes,
        }

    @staticmethod
    def _write_installments(db, agency_id: str, proposal_id: str, proposal_input: ProposalInput) -> None:
        repository = InstallmentRepository(agency_id=agency_id)
        for position, installment in enumerate(proposal_input.installments):
            repository.create(db, proposal_id, installment, position=position)

    @staticmethod
    def _detail(db, agency_id: str, proposal: Dict[str, Any]) -> Dict[str, Any]:
        status = _external_status(proposal.get("status"))
        unit = None
        if proposal.get("unit_id"):
            unit = UnitRepository(agency_id=agency_id).get_by_id(db, proposal["unit_id"])
            if unit is not None:
                unit["status"] = unit_status_from_storage(unit.get("status"))

        contacts = ContactRepository(agency_id=agency_id)
        primary = contacts.get_by_id(db, proposal["primary_contact_id"]) if proposal.get("primary_contact_id") else None
        secondary = (
            contacts.get_by_id(db, proposal["secondary_contact_id"]) if proposal.get("secondary_contact_id") else None
        )

        installment_repository = InstallmentRepository(agency_id=agency_id)
        installments: List[Dict[str, Any]] = []
        for row in installment_repository.list_for_proposal(db, proposal["id"]):
            installments.append(
                {
                    **row,
                    "conditionLabel": installment_label(row.get("condition")),
                    "dates": installment_repository.list_dates(db, row["id"]),
                }
            )
        total = installments_total(item.get("total_amount") for item in installments)

        return {
            **proposal,
            "status": status,
            "statusLabel": status_label("proposta", status),
            "unit": unit,
            "primaryContact": primary,
            "secondaryContact": secondary,
            "installments": installments,
            "totalInstallmentsAmount": total,
        }

