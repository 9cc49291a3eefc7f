from backoffice.infrastructure.repositories.agency_config_repository import AgencyConfigRepository
from backoffice.infrastructure.repositories.base import BaseRepository, TenantScopeRequiredError
from backoffice.infrastructure.repositories.building_repository import BuildingRepository
from backoffice.infrastructure.repositories.contact_repository import ContactRepository
from backoffice.infrastructure.repositories.installment_repository import InstallmentRepository
from backoffice.infrastructure.repositories.preferences_repository import PreferencesRepository
from backoffice.infrastructure.repositories.profile_repository import ProfileRepository
from backoffice.infrastructure.repositories.proposal_repository import ProposalRepository
from backoffice.infrastructure.repositories.rate_repository import MonthlyRateRepository
from backoffice.infrastructure.repositories.unit_repository import UnitRepository

__all__ = [
    "AgencyConfigRepository",
    "BaseRepository",
    "BuildingRepository",
    "ContactRepository",
    "InstallmentRepository",
    "MonthlyRateRepository",
    "PreferencesRepository",
    "ProfileRepository",
    "ProposalRepository",
    "TenantScopeRequiredError",
    "UnitRepository",
]
