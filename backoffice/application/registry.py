from __future__ import annotations

from flask import current_app

from backoffice.application.agency_config_service import AgencyConfigService
from backoffice.application.building_service import BuildingService
from backoffice.application.crm_sync_service import CrmSyncService
from backoffice.application.preferences_service import PreferencesService
from backoffice.application.proposal_service import ProposalService
from backoffice.application.proposal_status_service import ProposalStatusService
from backoffice.application.unit_status_service import UnitStatusService
from backoffice.cache import get_cache


def _list_ttl() -> int:
    return int(current_app.config.get("CACHE_LIST_TTL_SECONDS", 300) or 300)


def _config_ttl() -> int:
    return int(current_app.config.get("CACHE_CONFIG_TTL_SECONDS", 600) or 600)


def agency_config_service() -> AgencyConfigService:
    return AgencyConfigService(get_cache(), ttl_seconds=_config_ttl())


def preferences_service() -> PreferencesService:
    return PreferencesService(get_cache(), ttl_seconds=_config_ttl())


def crm_sync_service() -> CrmSyncService:
    return CrmSyncService(agency_config_service().load)


def proposal_status_service() -> ProposalStatusService:
    return ProposalStatusService(
        cache=get_cache(),
        unit_status_service=UnitStatusService(),
        crm_sync_service=crm_sync_service(),
    )


def proposal_service() -> ProposalService:
    return ProposalService(
        cache=get_cache(),
        unit_status_service=UnitStatusService(),
        crm_sync_service=crm_sync_service(),
        ttl_seconds=_list_ttl(),
    )


def building_service() -> BuildingService:
    return BuildingService(
        cache=get_cache(),
        unit_status_service=UnitStatusService(),
        ttl_seconds=_list_ttl(),
    )
