from __future__ import annotations

from typing import Any, Dict

from backoffice.infrastructure.repositories.base import BaseRepository


_PROPOSAL_COLUMNS = """
    id, agency_id, unit_id, created_by, primary_contact_id, secondary_contact_id,
    opportunity_id, name, proposal_date, status, reserved_until, responsible, notes,
    created_at, updated_at
"""

_WRITABLE_FIELDS = (
    "unit_id",
    "primary_contact_id",
    "secondary_contact_id",
    "opportunity_id",
    "name",
    "proposal_date",
    "reserved_until",
    "responsible",
    "notes",
)


class ProposalRepository(BaseRepository):
    def get_by_id(self, db, proposal_id: str) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_PROPOSAL_COLUMNS}
            FROM proposals
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((proposal_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def get_sync_context(self, db, proposal_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT
                p.id,
                p.opportunity_id,
                p.responsible,
                p.notes,
                p.reserved_until,
                p.primary_contact_id,
                u.id AS unit_id,
                u.name AS unit_name,
                u.number AS unit_number,
                b.name AS building_name
            FROM proposals p
            LEFT JOIN units u ON u.id = p.unit_id AND u.agency_id = p.agency_id
            LEFT JOIN buildings b ON b.id = u.building_id AND b.agency_id = p.agency_id
            WHERE p.id = ? AND p.agency_id = ?
            """,
            self.scoped_params((proposal_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def update_status(self, db, proposal_id: str, storage_status: str) -> dict | None:
        rows = db.execute(
            """
            UPDATE proposals
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            RETURNING id, status
            """,
            self.scoped_params((storage_status, proposal_id)),
        ).fetchall()
        return self.row_to_dict(rows[0]) if rows else None

    def set_reserved_until(self, db, proposal_id: str, reserved_until: str | None) -> None:
        db.execute(
            """
            UPDATE proposals
            SET reserved_until = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((reserved_until, proposal_id)),
        )

    def create(self, db, *, created_by: str | None, fields: Dict[str, Any]) -> str:
        proposal_id = self.new_id()
        db.execute(
            """
            INSERT INTO proposals (
                id, agency_id, unit_id, created_by, primary_contact_id, secondary_contact_id,
                opportunity_id, name, proposal_date, status, reserved_until, responsible, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'under_review', ?, ?, ?)
            """,
            (
                proposal_id,
                self.agency_id,
                fields.get("unit_id"),
                created_by,
                fields.get("primary_contact_id"),
                fields.get("secondary_contact_id"),
                fields.get("opportunity_id"),
                fields.get("name"),
                fields.get("proposal_date"),
                fields.get("reserved_until"),
                fields.get("responsible"),
                fields.get("notes"),
            ),
        )
        return proposal_id

    def update(self, db, proposal_id: str, fields: Dict[str, Any]) -> bool:
        updates = {key: value for key, value in fields.items() if key in _WRITABLE_FIELDS}
        if not updates:
            return False
        assignments = ", ".join(f"{column} = ?" for column in updates)
        cursor = db.execute(
            f"""
            UPDATE proposals
            SET {assignments}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND agency_id = ?
            """,
            self.scoped_params((*updates.values(), proposal_id)),
        )
        return int(cursor.rowcount or 0) > 0

    def list_match(self, db, *, created_by: str | None = None, limit: int = 500) -> list[dict]:
        params: list[Any] = [self.agency_id]
        creator_clause = ""
        if created_by:
            creator_clause = "AND created_by = ?"
            params.append(created_by)
        params.append(int(limit))
        rows = db.execute(
            f"""
            SELECT
                id, name, opportunity_id, status, agency_id, created_by, proposal_date,
                reserved_until, unit_id, building_name, unit_name, primary_contact_name,
                total_installments_amount, created_at
            FROM proposals_match
            WHERE agency_id = ? {creator_clause}
            ORDER BY created_at DESC, id
            LIMIT ?
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def ids_for_unit(self, db, unit_id: str) -> list[str]:
        rows = db.execute(
            "SELECT id FROM proposals WHERE unit_id = ? AND agency_id = ?",
            self.scoped_params((unit_id,)),
        ).fetchall()
        return [str(row["id"]) for row in rows]

    def count_contact_references(self, db, contact_id: str) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM proposals
            WHERE (primary_contact_id = ? OR secondary_contact_id = ?) AND agency_id = ?
            """,
            self.scoped_params((contact_id, contact_id)),
        ).fetchone()
        return int(row["total"] or 0) if row else 0

    def delete(self, db, proposal_id: str) -> bool:
        cursor = db.execute(
            "DELETE FROM proposals WHERE id = ? AND agency_id = ?",
            self.scoped_params((proposal_id,)),
        )
        return int(cursor.rowcount or 0) > 0
