from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without agency scope."""


class BaseRepository:
    tenant_column = "agency_id"

    def __init__(self, *, agency_id: str | None = None) -> None:
        scope = str(agency_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("agency_id is required for repository access")
        self.agency_id = scope

    def build_tenant_clause(self, *, table_alias: str | None = None) -> str:
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}{self.tenant_column} = ?"

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.agency_id)

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _plain(value: Any) -> Any:
        # psycopg2 hands back Decimal/date objects; keep payloads JSON-friendly.
        if isinstance(value, Decimal):
            return float(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return value

    @classmethod
    def row_to_dict(cls, row: Any) -> dict | None:
        if row is None:
            return None
        return {key: cls._plain(value) for key, value in dict(row).items()}

    @classmethod
    def rows_to_dicts(cls, rows: Iterable[Any]) -> list[dict]:
        return [cls.row_to_dict(row) for row in rows]
