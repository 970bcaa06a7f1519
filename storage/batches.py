"""Production batch and match result persistence."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from core.config import DEFAULT_DB_PATH
from models.production import LinkStatus, MatchResult, ProductionBatch
from storage.db import DEFAULT_TIMEOUT_S, connect, to_db


BATCH_COLUMNS = [
    "batch_id",
    "batch_number",
    "batch_datetime",
    "client_name",
    "formula",
    "cement_kg",
    "sand_kg",
    "gravel_kg",
    "water_l",
    "additives_l",
    "total_volume_m3",
    "operator_name",
    "source_file",
    "imported_at",
    "link_status",
    "linked_note_id",
    "link_confidence",
]


def row_to_result(row: sqlite3.Row) -> MatchResult:
    data = dict(row)
    scores = data.pop("scores_json")
    data["scores"] = json.loads(scores) if scores else None
    data["candidates"] = json.loads(data.pop("candidates_json") or "[]")
    data["superseded"] = bool(data["superseded"])
    return MatchResult.model_validate(data)


class BatchStore:
    """SQLite-backed store for the machine feed and reconciliation results."""

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT_S):
        self.db_path = db_path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        return connect(self.db_path, self.timeout)

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    def insert(self, batch: ProductionBatch) -> ProductionBatch:
        if batch.imported_at is None:
            batch = batch.model_copy(update={"imported_at": datetime.utcnow()})
        values = [to_db(getattr(batch, col)) for col in BATCH_COLUMNS]

        conn = self._connect()
        try:
            conn.execute(
                f"INSERT INTO production_batches ({', '.join(BATCH_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in BATCH_COLUMNS)})",
                values,
            )
            conn.commit()
            return batch
        finally:
            conn.close()

    def get(self, batch_id: str) -> Optional[ProductionBatch]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM production_batches WHERE batch_id = ?", (batch_id,)
            ).fetchone()
            return ProductionBatch.model_validate(dict(row)) if row else None
        finally:
            conn.close()

    def list_unlinked(self, limit: int = 500) -> List[ProductionBatch]:
        """Batches needing a (re)run, oldest first.

        That is batches never evaluated, left without a match, or pending on
        a proposed note that has since been linked to another batch.
        """
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT b.* FROM production_batches b "
                "LEFT JOIN delivery_notes n ON n.note_id = b.linked_note_id "
                "WHERE b.link_status IS NULL OR b.link_status = ? "
                "OR (b.link_status = ? AND n.linked_batch_id IS NOT NULL "
                "AND n.linked_batch_id != b.batch_id) "
                "ORDER BY b.batch_datetime, b.batch_id LIMIT ?",
                (LinkStatus.NO_MATCH.value, LinkStatus.PENDING.value, limit),
            ).fetchall()
            return [ProductionBatch.model_validate(dict(r)) for r in rows]
        finally:
            conn.close()

    def update_link(
        self,
        batch_id: str,
        status: LinkStatus,
        note_id: Optional[str],
        confidence: Optional[int],
    ) -> None:
        """Update only the link bookkeeping of a batch."""
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE production_batches "
                "SET link_status = ?, linked_note_id = ?, link_confidence = ? "
                "WHERE batch_id = ?",
                (status.value, note_id, confidence, batch_id),
            )
            conn.commit()
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Match results
    # -------------------------------------------------------------------------

    def record_result(self, result: MatchResult) -> MatchResult:
        """Store a new result and supersede the previous ones for the batch, atomically."""
        evaluated_at = result.evaluated_at or datetime.utcnow()
        candidates = [c.model_dump(mode="json") for c in result.candidates]
        scores = result.scores.model_dump(mode="json") if result.scores else None

        conn = self._connect()
        try:
            conn.execute(
                "UPDATE match_results SET superseded = 1 WHERE batch_id = ? AND superseded = 0",
                (result.batch_id,),
            )
            cursor = conn.execute("""
                INSERT INTO match_results
                (batch_id, note_id, scores_json, confidence, status,
                 candidates_json, reason, evaluated_at, superseded)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
            """, (
                result.batch_id,
                result.note_id,
                json.dumps(scores) if scores else None,
                result.confidence,
                result.status.value,
                json.dumps(candidates),
                result.reason,
                evaluated_at.isoformat(),
            ))
            conn.commit()
            return result.model_copy(update={
                "result_id": cursor.lastrowid,
                "evaluated_at": evaluated_at,
                "superseded": False,
            })
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

    def current_result(self, batch_id: str) -> Optional[MatchResult]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM match_results WHERE batch_id = ? AND superseded = 0 "
                "ORDER BY result_id DESC LIMIT 1",
                (batch_id,),
            ).fetchone()
            return row_to_result(row) if row else None
        finally:
            conn.close()

    def list_results(self, batch_id: str) -> List[MatchResult]:
        """Every result for a batch, oldest first, superseded ones included."""
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM match_results WHERE batch_id = ? ORDER BY result_id",
                (batch_id,),
            ).fetchall()
            return [row_to_result(r) for r in rows]
        finally:
            conn.close()
