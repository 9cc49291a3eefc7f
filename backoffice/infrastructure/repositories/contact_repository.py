from __future__ import annotations

from backoffice.domain.contracts import ContactInput
from backoffice.infrastructure.repositories.base import BaseRepository


class ContactRepository(BaseRepository):
    def get_by_id(self, db, contact_id: str) -> dict | None:
        row = db.execute(
            "SELECT id, agency_id, homio_id, name FROM contacts WHERE id = ? AND agency_id = ?",
            self.scoped_params((contact_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def find_existing(self, db, contact: ContactInput) -> dict | None:
        if contact.homio_id:
            row = db.execute(
                "SELECT id, homio_id, name FROM contacts WHERE homio_id = ? AND agency_id = ? LIMIT 1",
                self.scoped_params((contact.homio_id,)),
            ).fetchone()
        else:
            row = db.execute(
                """
                SELECT id, homio_id, name
                FROM contacts
                WHERE homio_id IS NULL AND name = ? AND agency_id = ?
                LIMIT 1
                """,
                self.scoped_params((contact.name,)),
            ).fetchone()
        return self.row_to_dict(row)

    def upsert(self, db, contact: ContactInput) -> str:
        """Reuse the contact with the same homio_id (or name when there is none)."""
        existing = self.find_existing(db, contact)
        if existing:
            if contact.name and contact.name != existing.get("name"):
                db.execute(
                    "UPDATE contacts SET name = ? WHERE id = ? AND agency_id = ?",
                    self.scoped_params((contact.name, existing["id"])),
                )
            return str(existing["id"])

        contact_id = self.new_id()
        db.execute(
            "INSERT INTO contacts (id, agency_id, homio_id, name) VALUES (?, ?, ?, ?)",
            (contact_id, self.agency_id, contact.homio_id, contact.name),
        )
        return contact_id

    def delete(self, db, contact_id: str) -> bool:
        cursor = db.execute(
            "DELETE FROM contacts WHERE id = ? AND agency_id = ?",
            self.scoped_params((contact_id,)),
        )
        return int(cursor.rowcount or 0) > 0
