"""Production Batch Models.

This module defines the Pydantic models for batch reconciliation:
- ProductionBatch: one machine-reported mixing event
- LinkStatus: the link decision carried by a batch
- MatchScores: the four sub-scores for one (batch, note) pair
- MatchResult: the outcome of one reconciliation of a batch
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field


class LinkStatus(str, Enum):
    """How a batch is (or is not) tied to a delivery note."""
    AUTO_LINKED = "auto_linked"      # Confidence >= 90
    PENDING = "pending"              # 70-89, waiting for a human
    NO_MATCH = "no_match"            # < 70, batch stays available
    MANUAL_LINKED = "manual_linked"  # Confirmed or overridden by a human


class ProductionBatch(BaseModel):
    """One production event reported by the batching plant.

    Machine-reported fields are immutable once ingested; only the link
    bookkeeping at the bottom changes.
    """
    batch_id: str = Field(..., description="Internal identifier")
    batch_number: str = Field(..., description="Number printed by the plant controller")
    batch_datetime: datetime
    client_name: Optional[str] = Field(default=None, description="Free-text client as typed on the plant")
    formula: Optional[str] = Field(default=None, description="Formula code as typed on the plant")
    cement_kg: Decimal = Decimal("0")
    sand_kg: Decimal = Decimal("0")
    gravel_kg: Decimal = Decimal("0")
    water_l: Decimal = Decimal("0")
    additives_l: Decimal = Decimal("0")
    total_volume_m3: Optional[Decimal] = None
    operator_name: Optional[str] = None
    source_file: Optional[str] = None
    imported_at: Optional[datetime] = None

    link_status: Optional[LinkStatus] = None
    linked_note_id: Optional[str] = None
    link_confidence: Optional[int] = None


class MatchScores(BaseModel):
    """Independent sub-scores for one (batch, note) pair."""
    date_score: int = Field(default=0, ge=0, le=25)
    client_score: int = Field(default=0, ge=0, le=35)
    volume_score: int = Field(default=0, ge=0, le=25)
    formula_score: int = Field(default=0, ge=0, le=15)

    @computed_field
    @property
    def total(self) -> int:
        return self.date_score + self.client_score + self.volume_score + self.formula_score


class MatchCandidate(BaseModel):
    """A delivery note scored against a batch."""
    note_id: str
    client_name: Optional[str] = None
    volume_m3: Optional[Decimal] = None
    scores: MatchScores


class MatchResult(BaseModel):
    """Outcome of reconciling one batch. Superseded, never merged, on re-run."""
    result_id: Optional[int] = None
    batch_id: str
    note_id: Optional[str] = Field(default=None, description="Best candidate, if any")
    scores: Optional[MatchScores] = None
    confidence: int = 0
    status: LinkStatus
    candidates: List[MatchCandidate] = Field(default_factory=list)
    reason: Optional[str] = None
    evaluated_at: Optional[datetime] = None
    superseded: bool = False
