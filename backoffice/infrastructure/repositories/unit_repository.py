from __future__ import annotations

from typing import Any, Dict

from backoffice.infrastructure.repositories.base import BaseRepository


_UNSET = object()

_WRITABLE_FIELDS = (
    "number",
    "name",
    "tower",
    "floor",
    "gross_price_amount",
    "area",
    "parking_spots",
)


class UnitRepository(BaseRepository):
    def get_by_id(self, db, unit_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT
                u.id, u.agency_id, u.building_id, u.number, u.name, u.tower, u.floor,
                u.status, u.reserved_until, u.gross_price_amount, u.price_correction_rate,
                u.area, u.parking_spots, u.created_at, u.updated_at,
                b.name AS building_name
            FROM units u
            LEFT JOIN buildings b ON b.id = u.building_id AND b.agency_id = u.agency_id
            WHERE u.id = ? AND u.agency_id = ?
            """,
            self.scoped_params((unit_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def find_by_number(self, db, building_id: str, number: str, tower: str | None = None) -> dict | None:
        params: list[Any] = [building_id, number]
        tower_clause = ""
        if tower:
            tower_clause = "AND tower = ?"
            params.append(tower)
        row = db.execute(
            f"""
            SELECT id, building_id, number, name, tower, floor, status
            FROM units
            WHERE building_id = ? AND number = ? {tower_clause} AND agency_id = ?
            LIMIT 1
            """,
            self.scoped_params(params),
        ).fetchone()
        return self.row_to_dict(row)

    def find_by_label(self, db, building_id: str, label: str) -> dict | None:
        """First unit of the building whose name or number contains ``label``."""
        pattern = f"%{str(label).strip().lower()}%"
        row = db.execute(
            """
            SELECT id, building_id, number, name, tower, floor, status
            FROM units
            WHERE building_id = ?
              AND (LOWER(number) = LOWER(?) OR LOWER(name) LIKE ? OR LOWER(number) LIKE ?)
              AND agency_id = ?
            ORDER BY CASE WHEN LOWER(number) = LOWER(?) THEN 0 ELSE 1 END, number, id
            LIMIT 1
            """,
            (building_id, str(label).strip(), pattern, pattern, self.agency_id, str(label).strip()),
        ).fetchone()
        return self.row_to_dict(row)

    def list_for_building(self, db, building_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT
                id, building_id, number, name, tower, floor, status, reserved_until,
                gross_price_amount, price_correction_rate, area, parking_spots
            FROM units
            WHERE building_id = ? AND agency_id = ?
            ORDER BY tower, floor, number, id
            """,
            self.scoped_params((building_id,)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def ids_for_building(self, db, building_id: str) -> list[str]:
        rows = db.execute(
            "SELECT id FROM units WHERE building_id = ? AND agency_id = ?",
            self.scoped_params((building_id,)),
        ).fetchall()
        return [str(row["id"]) for row in rows]

    def create(self, db, *, building_id: str, fields: Dict[str, Any]) -> str:
        unit_id = self.new_id()
        db.execute(
            """
            INSERT INTO units (
                id, agency_id, building_id, number, name, tower, floor, status,
                gross_price_amount, price_correction_rate, area, parking_spots
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'available', ?, 0, ?, ?)
            """,
            (
                unit_id,
                self.agency_id,
                building_id,
                fields.get("number"),
                fields.get("name"),
                fields.get("tower"),
                fields.get("floor"),
                fields.get("gross_price_amount") or 0,
                fields.get("area"),
                fields.get("parking_spots"),
            ),
        )
        return unit_id

    def update(self, db, unit_id: str, fields: Dict[str, Any]) -> bool:
        updates = {key: value for key, value in fields.items() if key in _WRITABLE_FIELDS}
        if not updates:
            return False
        assignments = ", ".join(f"{column} = ?" for column in updates)
        cursor = db.execute(
            f"""
            UPDATE units
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((*updates.values(), unit_id)),
        )
        return int(cursor.rowcount or 0) > 0

    def update_status(self, db, unit_id: str, storage_status: str, reserved_until: Any = _UNSET) -> dict | None:
        """Scoped by (unit_id, agency_id); returns the updated row or None."""
        if reserved_until is _UNSET:
            sql = """
                UPDATE units
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND agency_id = ?
                RETURNING id, name, number, status, building_id
            """
            params = (storage_status, unit_id)
        else:
            sql = """
                UPDATE units
                SET status = ?, reserved_until = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND agency_id = ?
                RETURNING id, name, number, status, building_id
            """
            params = (storage_status, reserved_until, unit_id)
        rows = db.execute(sql, self.scoped_params(params)).fetchall()
        return self.row_to_dict(rows[0]) if rows else None

    def set_price_correction_rate(self, db, unit_id: str, rate: float) -> None:
        db.execute(
            """
            UPDATE units
            SET price_correction_rate = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((rate, unit_id)),
        )

    def delete(self, db, unit_id: str) -> bool:
        cursor = db.execute(
            "DELETE FROM units WHERE id = ? AND agency_id = ?",
            self.scoped_params((unit_id,)),
        )
        return int(cursor.rowcount or 0) > 0
