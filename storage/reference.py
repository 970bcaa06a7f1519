"""Read-only reference data (formula specs and material prices).

The catalog and price list are maintained elsewhere; this module only reads
them, plus a seeding helper used by scripts and tests.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from core.config import DEFAULT_DB_PATH
from core.errors import ReferenceDataUnavailable
from models.delivery import FormulaSpec, MaterialPrice
from storage.db import DEFAULT_TIMEOUT_S, connect, to_db


class SqliteReferenceData:
    """ReferenceDataProvider backed by the formula_specs and material_prices tables."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT_S):
        self.db_path = db_path
        self.timeout = timeout

    def get_formula_spec(self, formula_id: str) -> Optional[FormulaSpec]:
        try:
            conn = connect(self.db_path, self.timeout)
            try:
                row = conn.execute(
                    "SELECT * FROM formula_specs WHERE formula_id = ?", (formula_id,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise ReferenceDataUnavailable(f"formula spec lookup failed: {e}") from e

        return FormulaSpec.model_validate(dict(row)) if row else None

    def get_current_prices(self) -> List[MaterialPrice]:
        try:
            conn = connect(self.db_path, self.timeout)
            try:
                rows = conn.execute("SELECT material, unit_price FROM material_prices").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise ReferenceDataUnavailable(f"price list lookup failed: {e}") from e

        return [MaterialPrice.model_validate(dict(r)) for r in rows]


def seed_reference_data(
    formulas: Iterable[FormulaSpec] = (),
    prices: Iterable[MaterialPrice] = (),
    db_path: Path = DEFAULT_DB_PATH,
) -> None:
    """Upsert formula specs and prices."""
    now = datetime.utcnow().isoformat()
    conn = connect(db_path)
    try:
        for f in formulas:
            conn.execute("""
                INSERT OR REPLACE INTO formula_specs
                (formula_id, cement_kg_m3, admixture_l_m3, sand_kg_m3, gravel_kg_m3, water_l_m3)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                f.formula_id,
                to_db(f.cement_kg_m3),
                to_db(f.admixture_l_m3),
                to_db(f.sand_kg_m3),
                to_db(f.gravel_kg_m3),
                to_db(f.water_l_m3),
            ))
        for p in prices:
            conn.execute(
                "INSERT OR REPLACE INTO material_prices (material, unit_price, updated_at) VALUES (?, ?, ?)",
                (p.material, to_db(p.unit_price), now),
            )
        conn.commit()
    finally:
        conn.close()
