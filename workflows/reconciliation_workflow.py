"""
Batch Reconciliation Workflow

Periodic pass over the production feed:
LIST_UNLINKED → RECONCILE_BATCH (one activity per batch) → SUMMARY

Batches are independent; a batch that fails after retries is reported and
the pass continues with the next one.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from activities.reconcile import (
        list_unlinked_batches,
        reconcile_batch,
        ListUnlinkedBatchesInput,
        ReconcileBatchInput,
    )


@dataclass
class BatchReconciliationInput:
    """Input for the reconciliation pass"""
    limit: int = 500
    force: bool = False
    db_path: Optional[str] = None


@dataclass
class BatchReconciliationOutput:
    """Counts for one pass"""
    processed: int = 0
    auto_linked: int = 0
    pending: int = 0
    no_match: int = 0
    failed_batch_ids: List[str] = field(default_factory=list)


@workflow.defn
class BatchReconciliationWorkflow:
    """Reconciles every unlinked production batch."""

    @workflow.run
    async def run(self, input: BatchReconciliationInput) -> BatchReconciliationOutput:
        db_activity_options = {
            "start_to_close_timeout": timedelta(seconds=30),
            "retry_policy": RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=1),
                backoff_coefficient=2.0,
                non_retryable_error_types=["NotFound"],
            ),
        }

        listing = await workflow.execute_activity(
            list_unlinked_batches,
            ListUnlinkedBatchesInput(limit=input.limit, db_path=input.db_path),
            **db_activity_options,
        )
        workflow.logger.info(f"Reconciliation pass over {len(listing.batch_ids)} batches")

        output = BatchReconciliationOutput()
        for batch_id in listing.batch_ids:
            try:
                result = await workflow.execute_activity(
                    reconcile_batch,
                    ReconcileBatchInput(batch_id=batch_id, force=input.force, db_path=input.db_path),
                    **db_activity_options,
                )
            except ActivityError as e:
                workflow.logger.warning(f"Batch {batch_id} not reconciled: {e}")
                output.failed_batch_ids.append(batch_id)
                continue

            output.processed += 1
            if result.status == "auto_linked":
                output.auto_linked += 1
            elif result.status == "pending":
                output.pending += 1
            elif result.status == "no_match":
                output.no_match += 1

        workflow.logger.info(
            f"Reconciliation pass complete: {output.auto_linked} auto, "
            f"{output.pending} pending, {output.no_match} unmatched, "
            f"{len(output.failed_batch_ids)} failed"
        )
        return output
