from __future__ import annotations

from typing import Any, Dict

from backoffice.domain.contracts import Preferences
from backoffice.infrastructure.repositories.base import BaseRepository


PREFERENCE_COLUMNS = (
    "can_view_proposals",
    "can_manage_proposals",
    "can_view_buildings",
    "can_manage_buildings",
    "can_manage_only_assined_proposals",
)


class PreferencesRepository(BaseRepository):
    def get(self, db) -> Preferences | None:
        row = db.execute(
            f"SELECT agency_id, {', '.join(PREFERENCE_COLUMNS)} FROM preferences WHERE agency_id = ?",
            (self.agency_id,),
        ).fetchone()
        if row is None:
            return None
        return Preferences.from_row(self.row_to_dict(row))

    def create_default(self, db) -> Preferences:
        defaults = Preferences(agency_id=self.agency_id)
        db.execute(
            f"""
            INSERT INTO preferences (agency_id, {', '.join(PREFERENCE_COLUMNS)})
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                self.agency_id,
                defaults.can_view_proposals,
                defaults.can_manage_proposals,
                defaults.can_view_buildings,
                defaults.can_manage_buildings,
                defaults.can_manage_only_assined_proposals,
            ),
        )
        return defaults

    def update(self, db, values: Dict[str, Any]) -> None:
        updates = {key: values[key] for key in PREFERENCE_COLUMNS if key in values}
        if not updates:
            return
        assignments = ", ".join(f"{column} = ?" for column in updates)
        db.execute(
            f"""
            UPDATE preferences
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE agency_id = ?
            """,
            self.scoped_params(updates.values()),
        )
