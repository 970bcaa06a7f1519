"""Worker for the batch reconciliation pipeline.

Listens on the configured task queue (TEMPORAL_TASK_QUEUE) and runs the
reconciliation workflow and its activities.

Run with --queue <name> to override the queue.
Run with --start to kick off one reconciliation pass once the worker is up.
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

from temporalio.worker import Worker

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.reconciliation_workflow import BatchReconciliationWorkflow, BatchReconciliationInput
from activities.reconcile import list_unlinked_batches, reconcile_batch


logger = get_logger("workers.worker")

WORKFLOWS = [BatchReconciliationWorkflow]
ACTIVITIES = [list_unlinked_batches, reconcile_batch]


async def run_worker(queue: str = None, start_pass: bool = False):
    """Start a worker listening on the task queue.

    Args:
        queue: Task queue to poll (defaults to the configured one)
        start_pass: Also start one BatchReconciliationWorkflow
    """
    settings = get_settings()
    task_queue = queue or settings.task_queue
    client = None

    try:
        client = await get_temporal_client(settings)
        logger.info(f"Connected to Temporal namespace: {client.namespace}")

        worker = Worker(
            client,
            task_queue=task_queue,
            workflows=WORKFLOWS,
            activities=ACTIVITIES,
        )
        logger.info(
            f"Worker created for queue '{task_queue}'",
            extra_fields={"workflows": len(WORKFLOWS), "activities": len(ACTIVITIES)},
        )

        if start_pass:
            handle = await client.start_workflow(
                BatchReconciliationWorkflow.run,
                BatchReconciliationInput(),
                id=f"batch-reconciliation-{uuid.uuid4().hex[:8]}",
                task_queue=task_queue,
            )
            logger.info(f"Started reconciliation pass {handle.id}")

        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs, force=True)

    parser = argparse.ArgumentParser(description="Batch reconciliation Temporal worker")
    parser.add_argument(
        "--queue", "-q",
        default=settings.task_queue,
        help=f"Task queue to poll (default: {settings.task_queue})",
    )
    parser.add_argument(
        "--start",
        action="store_true",
        dest="start_pass",
        help="Start one reconciliation pass after the worker connects",
    )

    args = parser.parse_args()
    asyncio.run(run_worker(queue=args.queue, start_pass=args.start_pass))


if __name__ == "__main__":
    main()
