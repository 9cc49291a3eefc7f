from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from backoffice.application.proposal_service import ProposalService
from backoffice.application.proposal_status_service import invalidate_inventory
from backoffice.application.unit_status_service import UnitStatusService
from backoffice.cache import TtlCache
from backoffice.db import MONTH_COLUMNS
from backoffice.domain.contracts import AuthUser, ServiceOutput, UnitStatusChangeInput
from backoffice.errors import NotFoundError, ValidationError
from backoffice.infrastructure.repositories import (
    BuildingRepository,
    MonthlyRateRepository,
    PreferencesRepository,
    ProposalRepository,
    UnitRepository,
)
from backoffice.policies import PermissionSet, require_capability, resolve_permissions
from backoffice.proposals.pricing import (
    compound_monthly_rates,
    current_value,
    format_accumulated_percentage,
    format_rate,
    parse_percentage_input,
    round8,
)
from backoffice.proposals.status import unit_status_from_storage
from backoffice.ui_strings import status_label


logger = logging.getLogger("backoffice")

_BUILDING_FIELDS = ("name", "address", "city", "state")
_UNIT_TEXT_FIELDS = ("number", "name", "tower", "floor")


def _clean_text(values: Dict[str, Any], keys: tuple) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key in keys:
        if key in values:
            text = str(values[key] if values[key] is not None else "").strip()
            cleaned[key] = text or None
    return cleaned


def _number(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value).replace(",", "."))
    except InvalidOperation as exc:
        raise ValidationError(code="payload_invalid", message_key="payload_invalid", details=field) from exc
    if not number.is_finite():
        raise ValidationError(code="payload_invalid", message_key="payload_invalid", details=field)
    return float(number)


def _rate_value(value: Any) -> float | None:
    """Numbers are fractions (0.005); strings are typed percentages ('0,5')."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("taxa invalida")
    if isinstance(value, (int, float)):
        return float(round8(value))
    return parse_percentage_input(value)


class BuildingService:
    def __init__(
        self,
        *,
        cache: TtlCache,
        unit_status_service: UnitStatusService,
        ttl_seconds: int = 300,
    ) -> None:
        self.cache = cache
        self.unit_status_service = unit_status_service
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def permissions_for(db, user: AuthUser) -> PermissionSet:
        return resolve_permissions(PreferencesRepository(agency_id=user.agency_id).get(db), user.role)

    def list_buildings(self, db, user: AuthUser) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_view_buildings")
        repository = BuildingRepository(agency_id=user.agency_id)
        items = self.cache.get_or_load(
            "buildings",
            user.agency_id,
            "all",
            lambda: repository.list_with_counts(db),
            ttl_seconds=self.ttl_seconds,
        )
        return ServiceOutput({"items": items, "permissions": permissions.to_payload()})

    def get_building(self, db, user: AuthUser, building_id: str) -> ServiceOutput:
        permissions = self.permissions_for(db, user)
        require_capability(permissions, "can_view_buildings")
        detail = self.cache.get_or_load(
            "building",
            user.agency_id,
            building_id,
            lambda: self._building_detail(db, user.agency_id, building_id),
            ttl_seconds=self.ttl_seconds,
        )
        if detail is None:
            self.cache.invalidate("building", user.agency_id, building_id)
            raise NotFoundError(code="building_not_found", message_key="building_not_found", details=building_id)
        return ServiceOutput({"building": detail})

    def create_building(self, db, user: AuthUser, values: Dict[str, Any]) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        fields = _clean_text(values or {}, _BUILDING_FIELDS)
        if not fields.get("name"):
            raise ValidationError(code="building_name_required", message_key="building_name_required")
        building_id = BuildingRepository(agency_id=user.agency_id).create(db, fields)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info("building_created", extra={"agency_id": user.agency_id, "building_id": building_id})
        return ServiceOutput({"id": building_id}, status_code=201)

    def update_building(self, db, user: AuthUser, building_id: str, values: Dict[str, Any]) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        fields = _clean_text(values or {}, _BUILDING_FIELDS)
        if "name" in fields and not fields["name"]:
            raise ValidationError(code="building_name_required", message_key="building_name_required")
        if not fields:
            raise ValidationError(code="no_changes", message_key="no_changes")
        if not BuildingRepository(agency_id=user.agency_id).update(db, building_id, fields):
            raise NotFoundError(code="building_not_found", message_key="building_not_found", details=building_id)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info("building_updated", extra={"agency_id": user.agency_id, "building_id": building_id})
        return ServiceOutput({"id": building_id})

    def delete_building(self, db, user: AuthUser, building_id: str) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        buildings = BuildingRepository(agency_id=user.agency_id)
        if buildings.get_by_id(db, building_id) is None:
            raise NotFoundError(code="building_not_found", message_key="building_not_found", details=building_id)

        units_deleted = 0
        proposals_deleted = 0
        for unit_id in UnitRepository(agency_id=user.agency_id).ids_for_building(db, building_id):
            proposals_deleted += self._delete_unit_cascade(db, user.agency_id, unit_id)
            units_deleted += 1
        buildings.delete(db, building_id)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "building_deleted",
            extra={
                "agency_id": user.agency_id,
                "building_id": building_id,
                "units_deleted": units_deleted,
                "proposals_deleted": proposals_deleted,
            },
        )
        return ServiceOutput(
            {"id": building_id, "deleted": True, "unitsDeleted": units_deleted, "proposalsDeleted": proposals_deleted}
        )

    def create_unit(self, db, user: AuthUser, building_id: str, values: Dict[str, Any]) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        if BuildingRepository(agency_id=user.agency_id).get_by_id(db, building_id) is None:
            raise NotFoundError(code="building_not_found", message_key="building_not_found", details=building_id)
        fields = self._unit_fields(values or {})
        if not fields.get("number") and not fields.get("name"):
            raise ValidationError(code="unit_required", message_key="unit_required")
        unit_id = UnitRepository(agency_id=user.agency_id).create(db, building_id=building_id, fields=fields)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "unit_created",
            extra={"agency_id": user.agency_id, "building_id": building_id, "unit_id": unit_id},
        )
        return ServiceOutput({"id": unit_id, "buildingId": building_id}, status_code=201)

    def update_unit(self, db, user: AuthUser, unit_id: str, values: Dict[str, Any]) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        fields = self._unit_fields(values or {})
        if not fields:
            raise ValidationError(code="no_changes", message_key="no_changes")
        if not UnitRepository(agency_id=user.agency_id).update(db, unit_id, fields):
            raise NotFoundError(code="unit_not_found", message_key="unit_not_found", details=unit_id)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info("unit_updated", extra={"agency_id": user.agency_id, "unit_id": unit_id})
        return ServiceOutput({"id": unit_id})

    def delete_unit(self, db, user: AuthUser, unit_id: str) -> ServiceOutput:
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        if UnitRepository(agency_id=user.agency_id).get_by_id(db, unit_id) is None:
            raise NotFoundError(code="unit_not_found", message_key="unit_not_found", details=unit_id)
        proposals_deleted = self._delete_unit_cascade(db, user.agency_id, unit_id)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "unit_deleted",
            extra={"agency_id": user.agency_id, "unit_id": unit_id, "proposals_deleted": proposals_deleted},
        )
        return ServiceOutput({"id": unit_id, "deleted": True, "proposalsDeleted": proposals_deleted})

    def change_unit_status(self, db, user: AuthUser, change: UnitStatusChangeInput) -> ServiceOutput:
        try:
            return self.unit_status_service.change_status(db, user, self.permissions_for(db, user), change)
        finally:
            # The unit row may be committed even when the webhook fails.
            invalidate_inventory(self.cache, user.agency_id)

    def save_rates(self, db, user: AuthUser, unit_id: str, records: Any) -> ServiceOutput:
        """Replace the unit's monthly rates and recompute its accumulated correction."""
        require_capability(self.permissions_for(db, user), "can_manage_buildings")
        units = UnitRepository(agency_id=user.agency_id)
        unit = units.get_by_id(db, unit_id)
        if unit is None:
            raise NotFoundError(code="unit_not_found", message_key="unit_not_found", details=unit_id)

        parsed = self._parse_rate_records(records)
        rates = MonthlyRateRepository(agency_id=user.agency_id)
        for year, months in parsed.items():
            rates.upsert(db, unit_id, year, months)
        rates.delete_years_except(db, unit_id, list(parsed))

        accumulated = compound_monthly_rates(rates.list_for_unit(db, unit_id))
        units.set_price_correction_rate(db, unit_id, accumulated)
        db.commit()
        invalidate_inventory(self.cache, user.agency_id)
        logger.info(
            "unit_rates_saved",
            extra={"agency_id": user.agency_id, "unit_id": unit_id, "years": sorted(parsed), "rate": accumulated},
        )
        return ServiceOutput(
            {
                "unitId": unit_id,
                "priceCorrectionRate": accumulated,
                "accumulatedDisplay": format_accumulated_percentage(accumulated),
                "currentValue": current_value(unit.get("gross_price_amount"), accumulated),
            }
        )

    @staticmethod
    def _delete_unit_cascade(db, agency_id: str, unit_id: str) -> int:
        proposals = ProposalRepository(agency_id=agency_id)
        deleted = 0
        for proposal_id in proposals.ids_for_unit(db, unit_id):
            proposal = proposals.get_by_id(db, proposal_id)
            if proposal is None:
                continue
            ProposalService.delete_cascade(db, agency_id, proposal)
            deleted += 1
        MonthlyRateRepository(agency_id=agency_id).delete_for_unit(db, unit_id)
        UnitRepository(agency_id=agency_id).delete(db, unit_id)
        return deleted

    @staticmethod
    def _unit_fields(values: Dict[str, Any]) -> Dict[str, Any]:
        fields = _clean_text(values, _UNIT_TEXT_FIELDS)
        if "grossPriceAmount" in values:
            fields["gross_price_amount"] = _number(values["grossPriceAmount"], "grossPriceAmount") or 0
        if "area" in values:
            fields["area"] = _number(values["area"], "area")
        if "parkingSpots" in values:
            spots = _number(values["parkingSpots"], "parkingSpots")
            fields["parking_spots"] = int(spots) if spots is not None else None
        return fields

    @staticmethod
    def _parse_rate_records(records: Any) -> Dict[int, Dict[str, Any]]:
        if not isinstance(records, list):
            raise ValidationError(code="rates_invalid", message_key="rates_invalid", details="lista esperada")
        parsed: Dict[int, Dict[str, Any]] = {}
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise ValidationError(code="rates_invalid", message_key="rates_invalid", details=f"linha {index}")
            try:
                year = int(record.get("year"))
                months = {month: _rate_value(record.get(month)) for month in MONTH_COLUMNS}
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    code="rates_invalid",
                    message_key="rates_invalid",
                    details=f"linha {index}",
                ) from exc
            if year in parsed:
                raise ValidationError(code="rates_invalid", message_key="rates_invalid", details=f"ano {year} repetido")
            parsed[year] = months
        return parsed

    @staticmethod
    def _building_detail(db, agency_id: str, building_id: str) -> Dict[str, Any] | None:
        building = BuildingRepository(agency_id=agency_id).get_by_id(db, building_id)
        if building is None:
            return None
        rates = MonthlyRateRepository(agency_id=agency_id)
        units: List[Dict[str, Any]] = []
        for unit in UnitRepository(agency_id=agency_id).list_for_building(db, building_id):
            status = unit_status_from_storage(unit.get("status"))
            rate = unit.get("price_correction_rate") or 0
            unit_rates = rates.list_for_unit(db, unit["id"])
            units.append(
                {
                    **unit,
                    "status": status,
                    "statusLabel": status_label("unidade", status),
                    "rates": [
                        {**record, "display": {month: format_rate(record.get(month)) for month in MONTH_COLUMNS}}
                        for record in unit_rates
                    ],
                    "accumulatedDisplay": format_accumulated_percentage(rate),
                    "currentValue": current_value(unit.get("gross_price_amount"), rate),
                }
            )
        return {**building, "units": units}
