"""
Observability Module for the plant operations engine

Provides structured logging with correlation IDs (delivery note, batch,
reconciliation run, Temporal workflow).
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
