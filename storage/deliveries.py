"""Delivery note and alert persistence."""

import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from core.config import DEFAULT_DB_PATH
from models.delivery import Alert, DeliveryNote, DeliveryStatus
from storage.db import DEFAULT_TIMEOUT_S, as_bool, connect, to_db


# Columns rewritten by a transition, in UPDATE order.
MUTABLE_COLUMNS = [
    "workflow_status",
    "real_unit_cost",
    "margin_pct",
    "margin_alert",
    "planned_time",
    "departure_time",
    "return_time",
    "vehicle_id",
    "validated",
    "validated_by",
    "validated_at",
    "invoice_generated",
    "cancelled_by",
    "cancelled_at",
]

INSERT_COLUMNS = [
    "note_id",
    "client_id",
    "client_name",
    "formula_id",
    "volume_m3",
    "cement_actual_kg",
    "admixture_actual_l",
    "sale_price_m3",
    "delivery_date",
    "linked_batch_id",
] + MUTABLE_COLUMNS


def row_to_note(row: sqlite3.Row) -> DeliveryNote:
    data = dict(row)
    for flag in ("margin_alert", "validated", "invoice_generated"):
        data[flag] = as_bool(data[flag])
    data.pop("created_at", None)
    data.pop("updated_at", None)
    return DeliveryNote.model_validate(data)


class DeliveryStore:
    """SQLite-backed store for delivery notes and their alerts."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT_S):
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        return connect(self.db_path, self.timeout)

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def insert(self, note: DeliveryNote) -> DeliveryNote:
        """Insert a new note (typically created at planning)."""
        now = datetime.utcnow().isoformat()
        values = [to_db(getattr(note, col)) for col in INSERT_COLUMNS]
        placeholders = ", ".join("?" for _ in INSERT_COLUMNS)

        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO delivery_notes ({', '.join(INSERT_COLUMNS)}, created_at, updated_at) "
                f"VALUES ({placeholders}, ?, ?)",
                values + [now, now],
            )
            conn.commit()
            return note
        finally:
            conn.close()

    def get(self, note_id: str) -> Optional[DeliveryNote]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM delivery_notes WHERE note_id = ?", (note_id,)
            ).fetchone()
            return row_to_note(row) if row else None
        finally:
            conn.close()

    def update_if_status(self, note: DeliveryNote, expected_status: DeliveryStatus) -> bool:
        """Write the mutable fields of ``note`` only if the stored status still matches.

        Returns:
            True if the row was updated, False if the status moved underneath us
            (or the note vanished).
        """
        assignments = ", ".join(f"{col} = ?" for col in MUTABLE_COLUMNS)
        values = [to_db(getattr(note, col)) for col in MUTABLE_COLUMNS]

        conn = self._connect()
        try:
            cursor = conn.execute(
                f"UPDATE delivery_notes SET {assignments}, updated_at = ? "
                f"WHERE note_id = ? AND workflow_status = ?",
                values + [datetime.utcnow().isoformat(), note.note_id, to_db(expected_status)],
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def list_candidates(self, day: date, exclude_linked_to_other: Optional[str] = None) -> List[DeliveryNote]:
        """Non-cancelled notes scheduled on ``day``.

        Args:
            day: Calendar date to search
            exclude_linked_to_other: If given, drop notes already linked to a
                batch other than this one
        """
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM delivery_notes "
                "WHERE delivery_date = ? AND workflow_status != ? "
                "ORDER BY note_id",
                (day.isoformat(), DeliveryStatus.CANCELLED.value),
            ).fetchall()
        finally:
            conn.close()

        notes = [row_to_note(r) for r in rows]
        if exclude_linked_to_other is not None:
            notes = [
                n for n in notes
                if n.linked_batch_id is None or n.linked_batch_id == exclude_linked_to_other
            ]
        return notes

    def attach_batch(self, note_id: str, batch_id: str) -> bool:
        """Point a note at ``batch_id`` unless it is already linked to another batch.

        Returns:
            True if the note now references ``batch_id``, False if another
            batch holds it (or the note vanished).
        """
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE delivery_notes SET linked_batch_id = ?, updated_at = ? "
                "WHERE note_id = ? AND (linked_batch_id IS NULL OR linked_batch_id = ?)",
                (batch_id, datetime.utcnow().isoformat(), note_id, batch_id),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def detach_batch(self, note_id: str, batch_id: str) -> bool:
        """Clear the note's link reference if it still points at ``batch_id``."""
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE delivery_notes SET linked_batch_id = NULL, updated_at = ? "
                "WHERE note_id = ? AND linked_batch_id = ?",
                (datetime.utcnow().isoformat(), note_id, batch_id),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def insert_alert(self, alert: Alert) -> Alert:
        created_at = alert.created_at or datetime.utcnow()
        conn = self._connect()
        try:
            cursor = conn.execute("""
                INSERT INTO alerts
                (alert_type, severity, title, message, reference_id,
                 reference_table, audience_role, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alert.alert_type,
                alert.severity,
                alert.title,
                alert.message,
                alert.reference_id,
                alert.reference_table,
                to_db(alert.audience_role),
                created_at.isoformat(),
            ))
            conn.commit()
            return alert.model_copy(update={"alert_id": cursor.lastrowid, "created_at": created_at})
        finally:
            conn.close()

    def list_alerts(self, reference_id: Optional[str] = None) -> List[Alert]:
        conn = self._connect()
        try:
            if reference_id:
                rows = conn.execute(
                    "SELECT * FROM alerts WHERE reference_id = ? ORDER BY alert_id",
                    (reference_id,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM alerts ORDER BY alert_id").fetchall()
            return [Alert.model_validate(dict(r)) for r in rows]
        finally:
            conn.close()
