from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Set

from backoffice.domain.contracts import AuthUser, Preferences
from backoffice.errors import PermissionError as AppPermissionError


VALID_ROLES: Set[str] = {"admin", "user"}
OPEN_TO_USERS = "adminAndUser"


def normalize_role(role: str | None, default: str = "user") -> str:
    normalized = str(role or "").strip().lower()
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


@dataclass(frozen=True)
class PermissionSet:
    can_view_proposals: bool
    can_manage_proposals: bool
    can_view_buildings: bool
    can_manage_buildings: bool
    restrict_to_creator: bool

    def to_payload(self) -> dict:
        return {
            "canViewProposals": self.can_view_proposals,
            "canManageProposals": self.can_manage_proposals,
            "canViewBuildings": self.can_view_buildings,
            "canManageBuildings": self.can_manage_buildings,
            "restrictToCreator": self.restrict_to_creator,
        }


def resolve_permissions(preferences: Preferences | None, role: str | None) -> PermissionSet:
    """Collapse agency preferences and caller role into capabilities.

    Without preferences every capability is admin-only. With preferences a
    non-admin only gets a capability whose flag is ``adminAndUser``.
    """
    is_admin = normalize_role(role) == "admin"
    if preferences is None:
        return PermissionSet(
            can_view_proposals=is_admin,
            can_manage_proposals=is_admin,
            can_view_buildings=is_admin,
            can_manage_buildings=is_admin,
            restrict_to_creator=False,
        )

    def _granted(flag: str) -> bool:
        return is_admin or flag == OPEN_TO_USERS

    return PermissionSet(
        can_view_proposals=_granted(preferences.can_view_proposals),
        can_manage_proposals=_granted(preferences.can_manage_proposals),
        can_view_buildings=_granted(preferences.can_view_buildings),
        can_manage_buildings=_granted(preferences.can_manage_buildings),
        restrict_to_creator=bool(preferences.can_manage_only_assined_proposals) and not is_admin,
    )


def _deny(capability: str) -> AppPermissionError:
    return AppPermissionError(
        code="permission_denied",
        message_key="permission_denied",
        http_status=403,
        critical=False,
        details=f"capability {capability} negada",
    )


def require_capability(permissions: PermissionSet, capability: str) -> None:
    if capability not in asdict(permissions) or capability == "restrict_to_creator":
        raise ValueError(f"capability desconhecida: {capability}")
    if not getattr(permissions, capability):
        raise _deny(capability)


def require_admin(user: AuthUser) -> None:
    if not user.is_admin:
        raise _deny("admin")


def require_owner(user: AuthUser, permissions: PermissionSet, created_by: str | None) -> None:
    if permissions.restrict_to_creator and str(created_by or "") != user.profile_id:
        raise _deny("owner")
