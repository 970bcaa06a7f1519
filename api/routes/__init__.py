"""API Routes Package."""

from api.routes import health, deliveries, batches

__all__ = [
    "health",
    "deliveries",
    "batches",
]
