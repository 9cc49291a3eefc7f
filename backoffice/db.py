import sqlite3
from typing import Iterable, List

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g

from backoffice.errors import StorageError


_DRIVER_ERRORS: tuple = (sqlite3.Error,) + ((psycopg2.Error,) if psycopg2 is not None else ())


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        try:
            if self.backend == "postgres":
                cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                if params:
                    sql = _convert_qmark_to_pg(sql)
                    cursor.execute(sql, list(params))
                else:
                    cursor.execute(sql)
                return cursor
            return self._conn.execute(sql, tuple(params or ()))
        except _DRIVER_ERRORS as exc:
            raise StorageError.from_driver_error(exc) from exc

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        try:
            self._conn.commit()
        except _DRIVER_ERRORS as exc:
            raise StorageError.from_driver_error(exc) from exc

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == ";" and not in_single and not in_double:
            statements.append("".join(current))
            current = []
            continue
        current.append(ch)
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def get_read_db():
    if "db_read" not in g:
        read_url = current_app.config.get("DATABASE_READ_URL")
        if not read_url:
            return get_db()
        g.db_read = _connect_database(read_url)
    return g.db_read


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()
    db_read = g.pop("db_read", None)
    if db_read is not None:
        db_read.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)
    db.commit()


_SQLITE_TYPES = {
    "ts": "TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP",
    "date": "TEXT",
    "money": "REAL",
    "rate": "REAL",
    "bool": "INTEGER NOT NULL DEFAULT 0",
}

_POSTGRES_TYPES = {
    "ts": "TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP",
    "date": "DATE",
    "money": "NUMERIC(14, 2)",
    "rate": "NUMERIC(14, 8)",
    "bool": "BOOLEAN NOT NULL DEFAULT FALSE",
}

_MONTH_COLUMNS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        name TEXT,
        email TEXT,
        role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('admin','user')),
        created_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_tokens (
        token_hash TEXT PRIMARY KEY,
        profile_id TEXT NOT NULL REFERENCES profiles (id),
        created_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS buildings (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        name TEXT NOT NULL,
        address TEXT,
        city TEXT,
        state TEXT,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS units (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        building_id TEXT NOT NULL REFERENCES buildings (id),
        number TEXT,
        name TEXT,
        tower TEXT,
        floor TEXT,
        status TEXT NOT NULL DEFAULT 'available' CHECK (
            status IN ('available','reserved','sold')
        ),
        reserved_until {date},
        gross_price_amount {money} NOT NULL DEFAULT 0,
        price_correction_rate {rate} NOT NULL DEFAULT 0,
        area {money},
        parking_spots INTEGER,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS monthly_adjustment_rates (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        unit_id TEXT NOT NULL REFERENCES units (id),
        year INTEGER NOT NULL,
        {months},
        created_at {ts},
        updated_at {ts},
        UNIQUE (unit_id, year)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contacts (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        homio_id TEXT,
        name TEXT NOT NULL,
        created_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS proposals (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        unit_id TEXT REFERENCES units (id),
        created_by TEXT,
        primary_contact_id TEXT REFERENCES contacts (id),
        secondary_contact_id TEXT REFERENCES contacts (id),
        opportunity_id TEXT,
        name TEXT,
        proposal_date {date},
        status TEXT NOT NULL DEFAULT 'under_review' CHECK (
            status IN ('under_review','approved','denied')
        ),
        reserved_until {date},
        responsible TEXT,
        notes TEXT,
        created_at {ts},
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS installments (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        proposal_id TEXT NOT NULL REFERENCES proposals (id),
        condition TEXT NOT NULL CHECK (
            condition IN (
                'sinal','parcela_unica','financiamento','mensais','intermediarias',
                'anuais','semestrais','bimestrais','trimestrais'
            )
        ),
        amount_per_installment {money} NOT NULL DEFAULT 0,
        installments_count INTEGER NOT NULL DEFAULT 1,
        total_amount {money},
        start_date {date},
        position INTEGER NOT NULL DEFAULT 0,
        created_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS installments_dates (
        id TEXT PRIMARY KEY,
        agency_id TEXT NOT NULL,
        installment_id TEXT NOT NULL REFERENCES installments (id),
        date {date} NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agency_config (
        agency_id TEXT PRIMARY KEY,
        opportunity_name TEXT,
        opportunity_building TEXT,
        opportunity_unit TEXT,
        opportunity_floor TEXT,
        opportunity_tower TEXT,
        opportunity_responsible TEXT,
        opportunity_observations TEXT,
        opportunity_reserve_until TEXT,
        opportunity_parking_spots TEXT,
        contact_cpf TEXT,
        contact_rg TEXT,
        contact_rg_issuer TEXT,
        contact_nationality TEXT,
        contact_marital_status TEXT,
        contact_profession TEXT,
        contact_postal_code TEXT,
        contact_address TEXT,
        contact_city TEXT,
        contact_neighborhood TEXT,
        contact_state TEXT,
        table_url TEXT,
        updated_at {ts}
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS preferences (
        agency_id TEXT PRIMARY KEY,
        can_view_proposals TEXT NOT NULL DEFAULT 'admin' CHECK (can_view_proposals IN ('admin','adminAndUser')),
        can_manage_proposals TEXT NOT NULL DEFAULT 'admin' CHECK (can_manage_proposals IN ('admin','adminAndUser')),
        can_view_buildings TEXT NOT NULL DEFAULT 'admin' CHECK (can_view_buildings IN ('admin','adminAndUser')),
        can_manage_buildings TEXT NOT NULL DEFAULT 'admin' CHECK (can_manage_buildings IN ('admin','adminAndUser')),
        can_manage_only_assined_proposals {bool},
        updated_at {ts}
    )
    """,
)

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_profiles_agency ON profiles (agency_id)",
    "CREATE INDEX IF NOT EXISTS idx_buildings_agency ON buildings (agency_id)",
    "CREATE INDEX IF NOT EXISTS idx_units_agency_building ON units (agency_id, building_id)",
    "CREATE INDEX IF NOT EXISTS idx_contacts_agency_homio ON contacts (agency_id, homio_id)",
    "CREATE INDEX IF NOT EXISTS idx_proposals_agency_unit ON proposals (agency_id, unit_id)",
    "CREATE INDEX IF NOT EXISTS idx_proposals_agency_creator ON proposals (agency_id, created_by)",
    "CREATE INDEX IF NOT EXISTS idx_installments_proposal ON installments (proposal_id)",
    "CREATE INDEX IF NOT EXISTS idx_installments_dates_installment ON installments_dates (installment_id)",
)

_PROPOSALS_MATCH_SELECT = """
    SELECT
        p.id,
        p.name,
        p.opportunity_id,
        p.status,
        p.agency_id,
        p.created_by,
        p.proposal_date,
        p.reserved_until,
        p.unit_id,
        b.name AS building_name,
        COALESCE(u.name, u.number) AS unit_name,
        c.name AS primary_contact_name,
        COALESCE(
            (SELECT SUM(i.total_amount) FROM installments i WHERE i.proposal_id = p.id),
            0
        ) AS total_installments_amount,
        p.created_at
    FROM proposals p
    LEFT JOIN units u ON u.id = p.unit_id
    LEFT JOIN buildings b ON b.id = u.building_id
    LEFT JOIN contacts c ON c.id = p.primary_contact_id
"""

_BUILDINGS_UNITS_SELECT = """
    SELECT
        b.id,
        b.agency_id,
        b.name,
        b.address,
        b.city,
        b.state,
        b.created_at,
        COUNT(u.id) AS total_units,
        SUM(CASE WHEN u.status = 'available' THEN 1 ELSE 0 END) AS available_units,
        SUM(CASE WHEN u.status = 'reserved' THEN 1 ELSE 0 END) AS reserved_units,
        SUM(CASE WHEN u.status = 'sold' THEN 1 ELSE 0 END) AS sold_units
    FROM buildings b
    LEFT JOIN units u ON u.building_id = b.id AND u.agency_id = b.agency_id
    GROUP BY b.id, b.agency_id, b.name, b.address, b.city, b.state, b.created_at
"""


def _create_schema(db, types: dict) -> None:
    months = ",\n        ".join(f"{month} {types['rate']}" for month in _MONTH_COLUMNS)
    for statement in _TABLES:
        db.execute(statement.format(months=months, **types))
    for statement in _INDEXES:
        db.execute(statement)


def _init_db_sqlite(db: Database):
    _create_schema(db, _SQLITE_TYPES)
    db.execute(f"CREATE VIEW IF NOT EXISTS proposals_match AS {_PROPOSALS_MATCH_SELECT}")
    db.execute(f"CREATE VIEW IF NOT EXISTS buildings_units_view AS {_BUILDINGS_UNITS_SELECT}")


def _init_db_postgres(db: Database) -> None:
    _create_schema(db, _POSTGRES_TYPES)
    db.execute(f"CREATE OR REPLACE VIEW proposals_match AS {_PROPOSALS_MATCH_SELECT}")
    db.execute(f"CREATE OR REPLACE VIEW buildings_units_view AS {_BUILDINGS_UNITS_SELECT}")


SCHEMA_TABLES = (
    "installments_dates",
    "installments",
    "proposals",
    "contacts",
    "monthly_adjustment_rates",
    "units",
    "buildings",
    "agency_config",
    "preferences",
    "api_tokens",
    "profiles",
)

SCHEMA_VIEWS = ("proposals_match", "buildings_units_view")

MONTH_COLUMNS = _MONTH_COLUMNS
