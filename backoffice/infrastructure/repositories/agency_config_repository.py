from __future__ import annotations

from typing import Any, Dict

from backoffice.infrastructure.repositories.base import BaseRepository
from backoffice.integrations.custom_fields import config_columns


CONFIG_COLUMNS = tuple(config_columns()) + ("table_url",)


class AgencyConfigRepository(BaseRepository):
    def get(self, db) -> dict | None:
        row = db.execute(
            f"""
            SELECT agency_id, {", ".join(CONFIG_COLUMNS)}, updated_at
            FROM agency_config
            WHERE agency_id = ?
            """,
            (self.agency_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def upsert(self, db, values: Dict[str, Any]) -> None:
        updates = {key: values[key] for key in CONFIG_COLUMNS if key in values}
        if self.get(db) is None:
            columns = ["agency_id", *updates.keys()]
            placeholders = ", ".join("?" for _ in columns)
            db.execute(
                f"INSERT INTO agency_config ({', '.join(columns)}) VALUES ({placeholders})",
                (self.agency_id, *updates.values()),
            )
            return
        if not updates:
            return
        assignments = ", ".join(f"{column} = ?" for column in updates)
        db.execute(
            f"""
            UPDATE agency_config
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE agency_id = ?
            """,
            self.scoped_params(updates.values()),
        )
