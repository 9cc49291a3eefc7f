from __future__ import annotations

import logging
from typing import Any, Dict

from backoffice.cache import TtlCache
from backoffice.domain.contracts import ACCESS_LEVELS, AuthUser, Preferences, ServiceOutput
from backoffice.errors import ValidationError
from backoffice.infrastructure.repositories import PreferencesRepository
from backoffice.policies import PermissionSet, require_admin, resolve_permissions


logger = logging.getLogger("backoffice")

CACHE_ENTITY = "preferences"

_PAYLOAD_TO_COLUMN: Dict[str, str] = {
    "canViewProposals": "can_view_proposals",
    "canManageProposals": "can_manage_proposals",
    "canViewBuildings": "can_view_buildings",
    "canManageBuildings": "can_manage_buildings",
    "canManageOnlyAssinedProposals": "can_manage_only_assined_proposals",
}


class PreferencesService:
    def __init__(self, cache: TtlCache, ttl_seconds: int = 300) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def permissions_for(self, db, user: AuthUser, agency_id: str | None = None) -> PermissionSet:
        # Read fresh on every call: the gate decision is never cached.
        repository = PreferencesRepository(agency_id=agency_id or user.agency_id)
        return resolve_permissions(repository.get(db), user.role)

    def fetch_or_create(self, db, agency_id: str) -> Preferences:
        cached = self.cache.get(CACHE_ENTITY, agency_id, "record")
        if cached is not None:
            return Preferences(**cached)

        repository = PreferencesRepository(agency_id=agency_id)
        preferences = repository.get(db)
        if preferences is None:
            preferences = repository.create_default(db)
            db.commit()
            logger.info("preferences_created_with_defaults", extra={"agency_id": agency_id})
        self.cache.set(CACHE_ENTITY, agency_id, "record", preferences.__dict__, ttl_seconds=self.ttl_seconds)
        return preferences

    def get_preferences(self, db, user: AuthUser) -> ServiceOutput:
        preferences = self.fetch_or_create(db, user.agency_id)
        permissions = self.permissions_for(db, user)
        return ServiceOutput(
            {
                "preferences": preferences.to_payload(),
                "permissions": permissions.to_payload(),
                "role": user.role,
            }
        )

    def update_preferences(self, db, user: AuthUser, values: Dict[str, Any]) -> ServiceOutput:
        require_admin(user)
        updates = self._parse_updates(values)
        self.fetch_or_create(db, user.agency_id)
        PreferencesRepository(agency_id=user.agency_id).update(db, updates)
        db.commit()
        self.cache.invalidate(CACHE_ENTITY, user.agency_id)
        logger.info(
            "preferences_updated",
            extra={"agency_id": user.agency_id, "changed_fields": sorted(updates)},
        )
        return self.get_preferences(db, user)

    @staticmethod
    def _parse_updates(values: Dict[str, Any]) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        for payload_key, column in _PAYLOAD_TO_COLUMN.items():
            if payload_key not in values:
                continue
            value = values[payload_key]
            if column == "can_manage_only_assined_proposals":
                if not isinstance(value, bool):
                    raise ValidationError(code="preferences_invalid", message_key="preferences_invalid", details=payload_key)
                updates[column] = value
                continue
            if value not in ACCESS_LEVELS:
                raise ValidationError(
                    code="preferences_invalid",
                    message_key="preferences_invalid",
                    details=payload_key,
                    payload={"validValues": list(ACCESS_LEVELS)},
                )
            updates[column] = value
        if not updates:
            raise ValidationError(code="no_changes", message_key="no_changes")
        return updates
