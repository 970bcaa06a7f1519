"""SQLite persistence for delivery notes, alerts, batches and reference data."""

from storage.db import init_db
from storage.deliveries import DeliveryStore
from storage.batches import BatchStore
from storage.reference import SqliteReferenceData, seed_reference_data

__all__ = [
    "init_db",
    "DeliveryStore",
    "BatchStore",
    "SqliteReferenceData",
    "seed_reference_data",
]
