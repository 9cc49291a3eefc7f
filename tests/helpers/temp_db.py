from __future__ import annotations

import shutil
import sqlite3
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


_REPO_ROOT = Path(__file__).resolve().parents[2]

# Test apps never reach the CRM and never throttle the test client.
SANDBOX_DEFAULTS: Dict[str, Any] = {
    "HOMIO_MODE": "mock",
    "RATE_LIMIT_ENABLED": False,
    "DB_AUTO_INIT": False,
}


def assert_outside_repo(db_path: str) -> None:
    resolved = Path(db_path).resolve()
    try:
        resolved.relative_to(_REPO_ROOT)
    except ValueError:
        return
    raise ValueError(f"Banco de teste nao pode ficar dentro do repositorio: {resolved}")


@dataclass
class TempDbSandbox:
    """A throwaway folder holding one SQLite file for a single test case."""

    prefix: str = "backoffice_tests"
    db_name: str = "backoffice_imobiliario_test.db"
    temp_dir: str = field(init=False)
    db_path: str = field(init=False)

    def __post_init__(self) -> None:
        self.temp_dir = tempfile.mkdtemp(prefix=f"{self.prefix}_")
        self.db_path = str(Path(self.temp_dir) / self.db_name)
        assert_outside_repo(self.db_path)

    def make_config(self, base_config, **overrides):
        attrs = {"DATABASE_DIR": self.temp_dir, "DB_PATH": self.db_path, **SANDBOX_DEFAULTS}
        attrs.update(overrides)
        return type("TempConfig", (base_config,), attrs)

    def schema_objects(self) -> Dict[str, List[str]]:
        """Tables and views currently in the sandbox file, by type."""
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT type, name FROM sqlite_master WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%'"
            ).fetchall()
        finally:
            conn.close()
        objects: Dict[str, List[str]] = {"table": [], "view": []}
        for kind, name in rows:
            objects[kind].append(name)
        return {kind: sorted(names) for kind, names in objects.items()}

    def cleanup(self, attempts: int = 5) -> None:
        # Windows keeps the file locked for a moment after the last close.
        for attempt in range(attempts):
            try:
                shutil.rmtree(self.temp_dir)
                return
            except FileNotFoundError:
                return
            except PermissionError:
                time.sleep(0.05 * (2**attempt))
        shutil.rmtree(self.temp_dir, ignore_errors=True)
