from __future__ import annotations

from backoffice.infrastructure.repositories.base import BaseRepository


class ProfileRepository(BaseRepository):
    def get_by_id(self, db, profile_id: str) -> dict | None:
        row = db.execute(
            "SELECT id, agency_id, name, email, role FROM profiles WHERE id = ? AND agency_id = ?",
            self.scoped_params((profile_id,)),
        ).fetchone()
        return self.row_to_dict(row)

    def create(self, db, *, name: str | None, email: str | None, role: str, profile_id: str | None = None) -> str:
        new_id = profile_id or self.new_id()
        db.execute(
            "INSERT INTO profiles (id, agency_id, name, email, role) VALUES (?, ?, ?, ?, ?)",
            (new_id, self.agency_id, name, email, role),
        )
        return new_id
