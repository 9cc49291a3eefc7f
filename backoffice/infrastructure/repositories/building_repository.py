from __future__ import annotations

from typing import Any, Dict

from backoffice.infrastructure.repositories.base import BaseRepository


_WRITABLE_FIELDS = ("name", "address", "city", "state")


class BuildingRepository(BaseRepository):
    def list_with_counts(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT
                id, name, address, city, state, created_at,
                total_units, available_units, reserved_units, sold_units
            FROM buildings_units_view
            WHERE agency_id = ?
            ORDER BY name, id
            """,
            (self.agency_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_by_id(self, db, building_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, agency_id, name, address, city, state, created_at, updated_at
            FROM buildings
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((building_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def find_by_name(self, db, name: str) -> dict | None:
        row = db.execute(
            """
            SELECT id, name
            FROM buildings
            WHERE LOWER(name) = LOWER(?) AND agency_id = ?
            ORDER BY created_at, id
            LIMIT 1
            """,
            self.scoped_params((str(name).strip(),)),
        ).fetchone()
        return self.row_to_dict(row)

    def create(self, db, fields: Dict[str, Any]) -> str:
        building_id = self.new_id()
        db.execute(
            """
            INSERT INTO buildings (id, agency_id, name, address, city, state)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                building_id,
                self.agency_id,
                fields.get("name"),
                fields.get("address"),
                fields.get("city"),
                fields.get("state"),
            ),
        )
        return building_id

    def update(self, db, building_id: str, fields: Dict[str, Any]) -> bool:
        updates = {key: value for key, value in fields.items() if key in _WRITABLE_FIELDS}
        if not updates:
            return False
        assignments = ", ".join(f"{column} = ?" for column in updates)
        cursor = db.execute(
            f"""
            UPDATE buildings
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((*updates.values(), building_id)),
        )
        return int(cursor.rowcount or 0) > 0

    def delete(self, db, building_id: str) -> bool:
        cursor = db.execute(
            "DELETE FROM buildings WHERE id = ? AND agency_id = ?",
            self.scoped_params((building_id,)),
        )
        return int(cursor.rowcount or 0) > 0
