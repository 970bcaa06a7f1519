"""Database schema and connection helpers.

This module owns the SQLite schema shared by the stores:
- delivery_notes: operational record, one row per truckload
- alerts: append-only leakage notices
- production_batches: machine feed, plus link bookkeeping
- match_results: one row per reconciliation of a batch (superseded on re-run)
- formula_specs / material_prices: read-only reference data

Decimals are stored as TEXT to keep exact values; booleans as 0/1;
dates, times and datetimes as ISO strings.
"""

import sqlite3
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from core.config import DEFAULT_DB_PATH
from core.observability.logging import get_logger


logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 5.0


def connect(db_path: Path = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT_S) -> sqlite3.Connection:
    """Open a connection with name-addressable rows."""
    conn = sqlite3.connect(str(db_path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize all tables and indexes (idempotent).

    Args:
        db_path: Path to SQLite database file
    """
    conn = connect(db_path)
    try:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS delivery_notes (
                note_id TEXT PRIMARY KEY,
                client_id TEXT NOT NULL,
                client_name TEXT,
                formula_id TEXT NOT NULL,
                volume_m3 TEXT NOT NULL,
                cement_actual_kg TEXT,
                admixture_actual_l TEXT,
                sale_price_m3 TEXT,
                workflow_status TEXT NOT NULL DEFAULT 'planning',
                real_unit_cost TEXT,
                margin_pct TEXT,
                margin_alert INTEGER NOT NULL DEFAULT 0,
                delivery_date TEXT NOT NULL,
                planned_time TEXT,
                departure_time TEXT,
                return_time TEXT,
                vehicle_id TEXT,
                validated INTEGER NOT NULL DEFAULT 0,
                validated_by TEXT,
                validated_at TEXT,
                invoice_generated INTEGER NOT NULL DEFAULT 0,
                cancelled_by TEXT,
                cancelled_at TEXT,
                linked_batch_id TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_delivery_notes_date
            ON delivery_notes(delivery_date, workflow_status)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS alerts (
                alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                reference_id TEXT NOT NULL,
                reference_table TEXT NOT NULL,
                audience_role TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_alerts_reference
            ON alerts(reference_table, reference_id)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS production_batches (
                batch_id TEXT PRIMARY KEY,
                batch_number TEXT NOT NULL,
                batch_datetime TEXT NOT NULL,
                client_name TEXT,
                formula TEXT,
                cement_kg TEXT NOT NULL DEFAULT '0',
                sand_kg TEXT NOT NULL DEFAULT '0',
                gravel_kg TEXT NOT NULL DEFAULT '0',
                water_l TEXT NOT NULL DEFAULT '0',
                additives_l TEXT NOT NULL DEFAULT '0',
                total_volume_m3 TEXT,
                operator_name TEXT,
                source_file TEXT,
                imported_at TEXT NOT NULL,
                link_status TEXT,
                linked_note_id TEXT,
                link_confidence INTEGER
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_batches_link_status
            ON production_batches(link_status)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS match_results (
                result_id INTEGER PRIMARY KEY AUTOINCREMENT,
                batch_id TEXT NOT NULL,
                note_id TEXT,
                scores_json TEXT,
                confidence INTEGER NOT NULL,
                status TEXT NOT NULL,
                candidates_json TEXT NOT NULL DEFAULT '[]',
                reason TEXT,
                evaluated_at TEXT NOT NULL,
                superseded INTEGER NOT NULL DEFAULT 0
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_match_results_batch
            ON match_results(batch_id, superseded)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS formula_specs (
                formula_id TEXT PRIMARY KEY,
                cement_kg_m3 TEXT NOT NULL DEFAULT '0',
                admixture_l_m3 TEXT NOT NULL DEFAULT '0',
                sand_kg_m3 TEXT NOT NULL DEFAULT '0',
                gravel_kg_m3 TEXT NOT NULL DEFAULT '0',
                water_l_m3 TEXT NOT NULL DEFAULT '0'
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS material_prices (
                material TEXT PRIMARY KEY,
                unit_price TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.commit()
        logger.info("Database tables initialized", extra_fields={"db_path": str(db_path)})
    finally:
        conn.close()


# =============================================================================
# Column conversion
# =============================================================================

def to_db(value: Any) -> Any:
    """Convert a model value to its column representation."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def as_bool(value: Optional[int]) -> bool:
    return bool(value)
