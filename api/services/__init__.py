"""API Services Package."""

from api.services.engine import (
    get_batch_store,
    get_controller,
    get_delivery_store,
    get_reconciler,
    get_reference_data,
)

__all__ = [
    "get_batch_store",
    "get_controller",
    "get_delivery_store",
    "get_reconciler",
    "get_reference_data",
]
