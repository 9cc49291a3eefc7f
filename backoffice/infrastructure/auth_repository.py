from __future__ import annotations


class AuthRepository:
    """Token lookups run before the agency is known, so they are not tenant scoped."""

    def find_profile_by_token_hash(self, db, token_hash: str) -> dict | None:
        row = db.execute(
            """
            SELECT p.id, p.agency_id, p.name, p.role
            FROM api_tokens t
            JOIN profiles p ON p.id = t.profile_id
            WHERE t.token_hash = ?
            """,
            (token_hash,),
        ).fetchone()
        if not row:
            return None
        return dict(row)

    def find_profile(self, db, profile_id: str) -> dict | None:
        row = db.execute(
            "SELECT id, agency_id, name, role FROM profiles WHERE id = ?",
            (profile_id,),
        ).fetchone()
        if not row:
            return None
        return dict(row)

    def create_token(self, db, *, profile_id: str, token_hash: str) -> None:
        db.execute(
            "INSERT INTO api_tokens (token_hash, profile_id) VALUES (?, ?)",
            (token_hash, profile_id),
        )
