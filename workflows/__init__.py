"""Workflow definitions module."""

from workflows.reconciliation_workflow import (
    BatchReconciliationWorkflow,
    BatchReconciliationInput,
    BatchReconciliationOutput,
)

__all__ = ["BatchReconciliationWorkflow", "BatchReconciliationInput", "BatchReconciliationOutput"]
