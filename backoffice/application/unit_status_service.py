from __future__ import annotations

import logging
from typing import Any, Callable

from backoffice.domain.contracts import AuthUser, ConfirmedOutcome, ServiceOutput, UnitStatusChangeInput
from backoffice.errors import NotFoundError, ValidationError
from backoffice.infrastructure.repositories import UnitRepository
from backoffice.integrations import homio_client
from backoffice.policies import PermissionSet, require_capability
from backoffice.proposals.installments import parse_iso_date
from backoffice.proposals.status import unit_status_from_storage, unit_status_to_storage


logger = logging.getLogger("backoffice")

_UNSET: Any = object()


class UnitStatusService:
    """Unit status writes followed by the CRM confirmation webhook."""

    def __init__(self, push_fn: Callable[..., Any] | None = None) -> None:
        self.push_fn = push_fn or homio_client.push_unit_status

    def apply(
        self,
        db,
        *,
        agency_id: str,
        unit_id: str,
        storage_status: str,
        reserved_until: Any = _UNSET,
    ) -> ConfirmedOutcome:
        repository = UnitRepository(agency_id=agency_id)
        if reserved_until is _UNSET:
            updated = repository.update_status(db, unit_id, storage_status)
        else:
            updated = repository.update_status(db, unit_id, storage_status, reserved_until=reserved_until)
        if updated is None:
            raise NotFoundError(code="unit_not_found", message_key="unit_not_found", details=unit_id)
        db.commit()

        unit = repository.get_by_id(db, unit_id) or updated
        logger.info(
            "unit_status_updated",
            extra={"agency_id": agency_id, "unit_id": unit_id, "status": storage_status},
        )

        result = self.push_fn(
            unit_id=unit_id,
            unit_name=unit.get("name") or unit.get("number"),
            status=unit_status_from_storage(storage_status),
            agency_id=agency_id,
            building_name=unit.get("building_name"),
        )
        outcome = ConfirmedOutcome(target="unit_status", success=bool(result.success), message=result.message)
        if not outcome.success:
            logger.error(
                "unit_status_webhook_failed",
                extra={"agency_id": agency_id, "unit_id": unit_id, "error_details": outcome.message},
            )
        return outcome

    def change_status(
        self,
        db,
        user: AuthUser,
        permissions: PermissionSet,
        change: UnitStatusChangeInput,
    ) -> ServiceOutput:
        storage_status = unit_status_to_storage(change.status)
        require_capability(permissions, "can_manage_buildings")

        reserved_until: Any = _UNSET
        if change.status == "reservado":
            if change.reserved_until is not None:
                reserved_until = parse_iso_date(change.reserved_until)
                if reserved_until is None:
                    raise ValidationError(
                        code="reserved_until_invalid",
                        message_key="reserved_until_invalid",
                        details=str(change.reserved_until),
                    )
        else:
            reserved_until = None

        outcome = self.apply(
            db,
            agency_id=user.agency_id,
            unit_id=change.unit_id,
            storage_status=storage_status,
            reserved_until=reserved_until,
        )
        outcome.raise_for_failure()
        return ServiceOutput({"id": change.unit_id, "status": change.status})
