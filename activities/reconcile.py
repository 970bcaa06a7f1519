"""Reconciliation activities for the production batch feed.

Temporal activities that list unlinked batches and reconcile them one at a
time against delivery notes.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from batch_matcher.reconciler import BatchReconciler
from core.config import get_settings
from core.errors import NotFound
from core.observability.logging import with_correlation
from storage.batches import BatchStore
from storage.deliveries import DeliveryStore


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class ListUnlinkedBatchesInput:
    """Input for list_unlinked_batches activity.

    Attributes:
        limit: Maximum number of batches to return
        db_path: Database override (defaults to configured PLANT_DB_PATH)
    """
    limit: int = 500
    db_path: Optional[str] = None


@dataclass
class ListUnlinkedBatchesOutput:
    batch_ids: List[str]


@dataclass
class ReconcileBatchInput:
    """Input for reconcile_batch activity.

    Attributes:
        batch_id: Production batch to reconcile
        force: Re-score even if already auto/manually linked
        db_path: Database override (defaults to configured PLANT_DB_PATH)
    """
    batch_id: str
    force: bool = False
    db_path: Optional[str] = None


@dataclass
class ReconcileBatchOutput:
    """Output from reconcile_batch activity.

    Attributes:
        batch_id: The batch that was reconciled
        status: auto_linked, pending, no_match or manual_linked
        note_id: Best (or linked) delivery note, if any
        confidence: Total confidence 0-100
    """
    batch_id: str
    status: str
    note_id: Optional[str]
    confidence: int


def _reconciler(db_path: Optional[str]) -> BatchReconciler:
    settings = get_settings()
    path = Path(db_path) if db_path else settings.db_path
    return BatchReconciler(
        BatchStore(path, timeout=settings.db_timeout_s),
        DeliveryStore(path, timeout=settings.db_timeout_s),
    )


# =============================================================================
# Activity Definitions
# =============================================================================

@activity.defn
async def list_unlinked_batches(input: ListUnlinkedBatchesInput) -> ListUnlinkedBatchesOutput:
    """List batches with no link yet or left without a match."""
    settings = get_settings()
    path = Path(input.db_path) if input.db_path else settings.db_path
    batches = BatchStore(path, timeout=settings.db_timeout_s).list_unlinked(limit=input.limit)

    activity.logger.info(f"Found {len(batches)} unlinked batches")
    return ListUnlinkedBatchesOutput(batch_ids=[b.batch_id for b in batches])


@activity.defn
async def reconcile_batch(input: ReconcileBatchInput) -> ReconcileBatchOutput:
    """Reconcile one production batch against same-day delivery notes.

    Raises:
        ApplicationError: Non-retryable, when the batch no longer exists
    """
    info = activity.info()
    with with_correlation(workflow_id=info.workflow_id, activity_name=info.activity_type):
        try:
            result = _reconciler(input.db_path).reconcile_batch(input.batch_id, force=input.force)
        except NotFound as e:
            raise ApplicationError(str(e), type="NotFound", non_retryable=True) from e

    activity.logger.info(
        f"Batch {input.batch_id} reconciled: {result.status.value} ({result.confidence})"
    )
    return ReconcileBatchOutput(
        batch_id=input.batch_id,
        status=result.status.value,
        note_id=result.note_id,
        confidence=result.confidence,
    )
