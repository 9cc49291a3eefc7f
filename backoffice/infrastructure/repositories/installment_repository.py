from __future__ import annotations

from backoffice.domain.contracts import InstallmentInput
from backoffice.infrastructure.repositories.base import BaseRepository


class InstallmentRepository(BaseRepository):
    def list_for_proposal(self, db, proposal_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT
                id, proposal_id, condition, amount_per_installment, installments_count,
                total_amount, start_date, position, created_at
            FROM installments
            WHERE proposal_id = ? AND agency_id = ?
            ORDER BY created_at, position, id
            """,
            self.scoped_params((proposal_id,)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_dates(self, db, installment_id: str) -> list[str]:
        rows = db.execute(
            """
            SELECT date
            FROM installments_dates
            WHERE installment_id = ? AND agency_id = ?
            ORDER BY date
            """,
            self.scoped_params((installment_id,)),
        ).fetchall()
        return [str(self._plain(row["date"])) for row in rows]

    def create(self, db, proposal_id: str, installment: InstallmentInput, *, position: int) -> str:
        installment_id = self.new_id()
        db.execute(
            """
            INSERT INTO installments (
                id, agency_id, proposal_id, condition, amount_per_installment,
                installments_count, total_amount, start_date, position
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                installment_id,
                self.agency_id,
                proposal_id,
                installment.condition,
                installment.amount_per_installment,
                installment.installments_count,
                installment.total_amount,
                installment.start_date,
                int(position),
            ),
        )
        for value in installment.dates:
            db.execute(
                """
                INSERT INTO installments_dates (id, agency_id, installment_id, date)
                VALUES (?, ?, ?, ?)
                """,
                (self.new_id(), self.agency_id, installment_id, value),
            )
        return installment_id

    def delete_for_proposal(self, db, proposal_id: str) -> int:
        db.execute(
            """
            DELETE FROM installments_dates
            WHERE agency_id = ?
              AND installment_id IN (
                  SELECT id FROM installments WHERE proposal_id = ? AND agency_id = ?
              )
            """,
            (self.agency_id, proposal_id, self.agency_id),
        )
        cursor = db.execute(
            "DELETE FROM installments WHERE proposal_id = ? AND agency_id = ?",
            self.scoped_params((proposal_id,)),
        )
        return int(cursor.rowcount or 0)
