from __future__ import annotations

from typing import Any, Dict

from backoffice.db import MONTH_COLUMNS
from backoffice.infrastructure.repositories.base import BaseRepository


class MonthlyRateRepository(BaseRepository):
    def list_for_unit(self, db, unit_id: str) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT id, unit_id, year, {", ".join(MONTH_COLUMNS)}
            FROM monthly_adjustment_rates
            WHERE unit_id = ? AND agency_id = ?
            ORDER BY year
            """,
            self.scoped_params((unit_id,)),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def upsert(self, db, unit_id: str, year: int, months: Dict[str, Any]) -> None:
        values = [months.get(month) for month in MONTH_COLUMNS]
        existing = db.execute(
            "SELECT id FROM monthly_adjustment_rates WHERE unit_id = ? AND year = ? AND agency_id = ?",
            self.scoped_params((unit_id, int(year))),
        ).fetchone()
        if existing:
            assignments = ", ".join(f"{month} = ?" for month in MONTH_COLUMNS)
            db.execute(
                f"""
                UPDATE monthly_adjustment_rates
                SET {assignments}, updated_at = CURRENT_TIMESTAMP
                WHERE id = ? AND agency_id = ?
                """,
                self.scoped_params((*values, existing["id"])),
            )
            return

        placeholders = ", ".join("?" for _ in MONTH_COLUMNS)
        db.execute(
            f"""
            INSERT INTO monthly_adjustment_rates (id, agency_id, unit_id, year, {", ".join(MONTH_COLUMNS)})
            VALUES (?, ?, ?, ?, {placeholders})
            """,
            (self.new_id(), self.agency_id, unit_id, int(year), *values),
        )

    def delete_years_except(self, db, unit_id: str, years: list[int]) -> None:
        if not years:
            self.delete_for_unit(db, unit_id)
            return
        placeholders = ", ".join("?" for _ in years)
        db.execute(
            f"""
            DELETE FROM monthly_adjustment_rates
            WHERE unit_id = ? AND year NOT IN ({placeholders}) AND agency_id = ?
            """,
            self.scoped_params((unit_id, *[int(year) for year in years])),
        )

    def delete_for_unit(self, db, unit_id: str) -> None:
        db.execute(
            "DELETE FROM monthly_adjustment_rates WHERE unit_id = ? AND agency_id = ?",
            self.scoped_params((unit_id,)),
        )
