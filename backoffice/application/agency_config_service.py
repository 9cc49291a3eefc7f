from __future__ import annotations

import logging
from typing import Any, Dict

from backoffice.cache import TtlCache
from backoffice.domain.contracts import AuthUser, ServiceOutput
from backoffice.errors import IntegrationError, NotFoundError, ValidationError
from backoffice.infrastructure.repositories import AgencyConfigRepository, BuildingRepository, UnitRepository
from backoffice.infrastructure.repositories.agency_config_repository import CONFIG_COLUMNS
from backoffice.integrations import homio_client
from backoffice.integrations.custom_fields import (
    MODEL_FIELD_ALIASES,
    map_contact_custom_fields,
    map_opportunity_custom_fields,
    resolve_model_field_ids,
)
from backoffice.policies import require_admin


logger = logging.getLogger("backoffice")

CACHE_ENTITY = "agency_config"


class AgencyConfigService:
    def __init__(self, cache: TtlCache, ttl_seconds: int = 600) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def load(self, db, agency_id: str) -> Dict[str, Any] | None:
        return self.cache.get_or_load(
            CACHE_ENTITY,
            agency_id,
            "record",
            lambda: AgencyConfigRepository(agency_id=agency_id).get(db),
            ttl_seconds=self.ttl_seconds,
        )

    def get_config(self, db, user: AuthUser) -> ServiceOutput:
        config = self.load(db, user.agency_id)
        if config is None:
            raise NotFoundError(code="agency_config_not_found", message_key="agency_config_not_found")
        return ServiceOutput({"config": config})

    def update_config(self, db, user: AuthUser, values: Dict[str, Any]) -> ServiceOutput:
        require_admin(user)
        if not isinstance(values, dict):
            raise ValidationError(code="payload_invalid", message_key="payload_invalid")
        unknown = sorted(key for key in values if key not in CONFIG_COLUMNS)
        if unknown:
            raise ValidationError(
                code="payload_invalid",
                message_key="payload_invalid",
                details=", ".join(unknown),
                payload={"unknownFields": unknown},
            )
        updates = {key: (str(value).strip() or None) if value is not None else None for key, value in values.items()}
        if not updates:
            raise ValidationError(code="no_changes", message_key="no_changes")

        AgencyConfigRepository(agency_id=user.agency_id).upsert(db, updates)
        db.commit()
        self.cache.invalidate(CACHE_ENTITY, user.agency_id)
        logger.info(
            "agency_config_updated",
            extra={"agency_id": user.agency_id, "changed_fields": sorted(updates)},
        )
        return self.get_config(db, user)

    def remap_custom_fields(self, db, user: AuthUser) -> ServiceOutput:
        """Resolve every configured field key against the CRM catalogs and store the IDs."""
        require_admin(user)
        repository = AgencyConfigRepository(agency_id=user.agency_id)
        current = repository.get(db) or {}

        resolved: Dict[str, str] = {}
        unresolved: list[str] = []
        for model in MODEL_FIELD_ALIASES:
            try:
                remote = homio_client.fetch_custom_fields(agency_id=user.agency_id, model=model)
            except homio_client.HomioError as exc:
                raise IntegrationError(
                    code="custom_fields_unavailable",
                    message_key="custom_fields_unavailable",
                    details=str(exc),
                ) from exc
            model_resolved, model_unresolved = resolve_model_field_ids(model, remote, current)
            resolved.update(model_resolved)
            unresolved.extend(model_unresolved)

        changed = {column: value for column, value in resolved.items() if current.get(column) != value}
        if changed or not current:
            repository.upsert(db, changed)
            db.commit()
        self.cache.invalidate(CACHE_ENTITY, user.agency_id)
        logger.info(
            "custom_fields_remapped",
            extra={
                "agency_id": user.agency_id,
                "resolved_count": len(resolved),
                "changed_count": len(changed),
                "unresolved": unresolved,
            },
        )
        return ServiceOutput({"resolved": resolved, "changed": sorted(changed), "unresolved": unresolved})

    def lookup_contact(self, db, user: AuthUser, homio_id: str) -> ServiceOutput:
        homio_id = str(homio_id or "").strip()
        if not homio_id:
            raise ValidationError(code="payload_invalid", message_key="payload_invalid", details="homio_id")
        try:
            contact = homio_client.fetch_contact(agency_id=user.agency_id, contact_id=homio_id)
        except homio_client.HomioError as exc:
            raise NotFoundError(code="contact_not_found", message_key="contact_not_found", details=str(exc)) from exc

        name = contact.get("name") or " ".join(
            part for part in (contact.get("firstName"), contact.get("lastName")) if part
        )
        form = map_contact_custom_fields(contact.get("customFields") or [], self.load(db, user.agency_id))
        return ServiceOutput(
            {
                "id": str(contact["id"]),
                "name": name or None,
                "email": contact.get("email"),
                "phone": contact.get("phone"),
                "form": form,
            }
        )

    def lookup_opportunity(self, db, user: AuthUser, opportunity_id: str) -> ServiceOutput:
        """Prefill the proposal wizard from a CRM opportunity.

        The building is matched by name and the unit by name or number inside
        that building; either stays unset when nothing matches.
        """
        opportunity_id = str(opportunity_id or "").strip()
        if not opportunity_id:
            raise ValidationError(code="payload_invalid", message_key="payload_invalid", details="opportunity_id")
        try:
            opportunity = homio_client.fetch_opportunity(agency_id=user.agency_id, opportunity_id=opportunity_id)
        except homio_client.HomioError as exc:
            raise NotFoundError(
                code="opportunity_not_found",
                message_key="opportunity_not_found",
                details=str(exc),
            ) from exc

        form = map_opportunity_custom_fields(opportunity.get("customFields") or [], self.load(db, user.agency_id))
        form["opportunityId"] = str(opportunity.get("id") or opportunity_id)
        if opportunity.get("name"):
            form["name"] = str(opportunity["name"]).strip()

        if form.get("buildingName"):
            building = BuildingRepository(agency_id=user.agency_id).find_by_name(db, form["buildingName"])
            if building is not None:
                form["buildingId"] = building["id"]
                if form.get("unitNumber"):
                    unit = UnitRepository(agency_id=user.agency_id).find_by_label(
                        db, building["id"], form["unitNumber"]
                    )
                    if unit is not None:
                        form["unitId"] = unit["id"]

        logger.info(
            "opportunity_prefill",
            extra={
                "agency_id": user.agency_id,
                "opportunity_id": opportunity_id,
                "prefilled_fields": sorted(form),
            },
        )
        return ServiceOutput(
            {
                "id": form["opportunityId"],
                "name": form.get("name"),
                "contactId": opportunity.get("contactId"),
                "form": form,
            }
        )
