from __future__ import annotations

from typing import Any, Dict, List

from backoffice.application.auth_service import AuthService
from backoffice.domain.contracts import ContactInput, InstallmentInput
from backoffice.infrastructure.auth_repository import AuthRepository
from backoffice.infrastructure.repositories import (
    AgencyConfigRepository,
    BuildingRepository,
    ContactRepository,
    InstallmentRepository,
    PreferencesRepository,
    ProfileRepository,
    ProposalRepository,
    UnitRepository,
)


def seed_profile(db, agency_id: str, role: str, *, profile_id: str | None = None, token: str | None = None) -> Dict[str, str]:
    new_id = ProfileRepository(agency_id=agency_id).create(
        db,
        name=f"Perfil {role}",
        email=f"{role}@{agency_id}.test",
        role=role,
        profile_id=profile_id,
    )
    token = token or f"token-{new_id}"
    AuthRepository().create_token(db, profile_id=new_id, token_hash=AuthService.hash_token(token))
    db.commit()
    return {"id": new_id, "token": token, "headers": {"Authorization": f"Bearer {token}"}}


def seed_preferences(db, agency_id: str, **columns: Any) -> None:
    repository = PreferencesRepository(agency_id=agency_id)
    repository.create_default(db)
    if columns:
        repository.update(db, columns)
    db.commit()


def seed_agency_config(db, agency_id: str, values: Dict[str, Any]) -> None:
    AgencyConfigRepository(agency_id=agency_id).upsert(db, values)
    db.commit()


def seed_unit(
    db,
    agency_id: str,
    *,
    building_name: str = "Residencial Aurora",
    number: str = "101",
    gross_price_amount: float = 500000,
) -> Dict[str, str]:
    building_id = BuildingRepository(agency_id=agency_id).create(db, {"name": building_name, "city": "Curitiba"})
    unit_id = UnitRepository(agency_id=agency_id).create(
        db,
        building_id=building_id,
        fields={"number": number, "name": f"Apto {number}", "tower": "A", "floor": "1", "gross_price_amount": gross_price_amount},
    )
    db.commit()
    return {"building_id": building_id, "unit_id": unit_id}


def seed_proposal(
    db,
    agency_id: str,
    *,
    unit_id: str,
    created_by: str | None,
    contact_name: str = "Maria Souza",
    contact_homio_id: str | None = "homio-contact-1",
    opportunity_id: str | None = "opp-1",
    status: str = "under_review",
    installments: List[InstallmentInput] | None = None,
) -> Dict[str, str]:
    contact_id = ContactRepository(agency_id=agency_id).upsert(
        db,
        ContactInput(name=contact_name, homio_id=contact_homio_id),
    )
    repository = ProposalRepository(agency_id=agency_id)
    proposal_id = repository.create(
        db,
        created_by=created_by,
        fields={
            "unit_id": unit_id,
            "primary_contact_id": contact_id,
            "opportunity_id": opportunity_id,
            "name": f"Proposta {contact_name}",
            "proposal_date": "2026-10-01",
            "responsible": "Corretor Joao",
            "notes": "Cliente quer fechar este mes",
        },
    )
    if status != "under_review":
        repository.update_status(db, proposal_id, status)
    installment_repository = InstallmentRepository(agency_id=agency_id)
    for position, installment in enumerate(installments or []):
        installment_repository.create(db, proposal_id, installment, position=position)
    db.commit()
    return {"proposal_id": proposal_id, "contact_id": contact_id}
