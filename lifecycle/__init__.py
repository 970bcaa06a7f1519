"""Delivery lifecycle: permissions, costing, leakage and the transition controller."""

from lifecycle.controller import DeliveryLifecycleController
from lifecycle.costing import ReferenceDataProvider, compute_real_unit_cost
from lifecycle.leakage import LeakageResult, MIN_ACCEPTABLE_MARGIN_PCT, evaluate_leakage
from lifecycle.permissions import TRANSITION_PERMISSIONS, allowed_targets, can_transition

__all__ = [
    "DeliveryLifecycleController",
    "ReferenceDataProvider",
    "compute_real_unit_cost",
    "LeakageResult",
    "MIN_ACCEPTABLE_MARGIN_PCT",
    "evaluate_leakage",
    "TRANSITION_PERMISSIONS",
    "allowed_targets",
    "can_transition",
]
