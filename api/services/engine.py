"""
Engine wiring for the API.

Builds stores, the lifecycle controller and the batch reconciler against the
configured SQLite database. Routes receive them through FastAPI dependencies
so tests can point them at a temporary database via
``app.dependency_overrides``.
"""

from pathlib import Path

from fastapi import Depends

from batch_matcher.reconciler import BatchReconciler
from core.config import get_settings
from lifecycle.controller import DeliveryLifecycleController
from storage.batches import BatchStore
from storage.deliveries import DeliveryStore
from storage.reference import SqliteReferenceData


def _db_path() -> Path:
    return get_settings().db_path


def get_delivery_store() -> DeliveryStore:
    return DeliveryStore(_db_path(), timeout=get_settings().db_timeout_s)


def get_batch_store() -> BatchStore:
    return BatchStore(_db_path(), timeout=get_settings().db_timeout_s)


def get_reference_data() -> SqliteReferenceData:
    return SqliteReferenceData(_db_path(), timeout=get_settings().db_timeout_s)


def get_controller(
    store: DeliveryStore = Depends(get_delivery_store),
    reference: SqliteReferenceData = Depends(get_reference_data),
) -> DeliveryLifecycleController:
    return DeliveryLifecycleController(store, reference)


def get_reconciler(
    batches: BatchStore = Depends(get_batch_store),
    notes: DeliveryStore = Depends(get_delivery_store),
) -> BatchReconciler:
    return BatchReconciler(batches, notes)
