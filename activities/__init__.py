"""Activity definitions module."""

from activities.reconcile import (
    list_unlinked_batches,
    reconcile_batch,
    ListUnlinkedBatchesInput,
    ListUnlinkedBatchesOutput,
    ReconcileBatchInput,
    ReconcileBatchOutput,
)

__all__ = [
    "list_unlinked_batches",
    "reconcile_batch",
    "ListUnlinkedBatchesInput",
    "ListUnlinkedBatchesOutput",
    "ReconcileBatchInput",
    "ReconcileBatchOutput",
]
