"""Models Package.

Data models for the plant operations engine:
- Delivery note lifecycle models
- Production batch and reconciliation models
"""

from models.delivery import (
    Actor,
    Alert,
    DeliveryNote,
    DeliveryStatus,
    FormulaSpec,
    MaterialPrice,
    Role,
    TransitionResult,
)

from models.production import (
    LinkStatus,
    MatchCandidate,
    MatchResult,
    MatchScores,
    ProductionBatch,
)

__all__ = [
    # Delivery
    "Actor",
    "Alert",
    "DeliveryNote",
    "DeliveryStatus",
    "FormulaSpec",
    "MaterialPrice",
    "Role",
    "TransitionResult",
    # Production
    "LinkStatus",
    "MatchCandidate",
    "MatchResult",
    "MatchScores",
    "ProductionBatch",
]
