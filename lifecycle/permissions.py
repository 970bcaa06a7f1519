"""Transition permission table for delivery notes.

Every ordered pair of distinct statuses has an entry, most of them empty.
Two structural rules bind every role: cancelled is terminal, and it is
reachable only from the early stages. Within those rules the elevated role
(CEO) may take any pair; everyone else must be whitelisted for the exact
(from, to) edge.
"""

from itertools import permutations
from typing import Dict, FrozenSet, List, Tuple

from models.delivery import DeliveryStatus, Role


ELEVATED_ROLE = Role.CEO

S = DeliveryStatus

# Edges of the forward workflow and who (besides the CEO) may walk them.
_WHITELIST: Dict[Tuple[DeliveryStatus, DeliveryStatus], FrozenSet[Role]] = {
    (S.PLANNING, S.PRODUCTION): frozenset({Role.OPERATIONS_DIRECTOR}),
    (S.PRODUCTION, S.TECHNICAL_VALIDATION): frozenset({Role.PLANT_OPERATOR}),
    (S.TECHNICAL_VALIDATION, S.IN_TRANSIT): frozenset({Role.TECHNICAL_MANAGER}),
    (S.IN_TRANSIT, S.DELIVERED): frozenset({Role.OPERATIONS_DIRECTOR, Role.ADMIN_AGENT}),
    (S.DELIVERED, S.INVOICED): frozenset({Role.ADMIN_AGENT}),
    # Cancellation is CEO-only, but only from the early stages
    (S.PLANNING, S.CANCELLED): frozenset(),
    (S.PRODUCTION, S.CANCELLED): frozenset(),
    (S.TECHNICAL_VALIDATION, S.CANCELLED): frozenset(),
}

TRANSITION_PERMISSIONS: Dict[Tuple[DeliveryStatus, DeliveryStatus], FrozenSet[Role]] = {
    pair: _WHITELIST.get(pair, frozenset())
    for pair in permutations(DeliveryStatus, 2)
}

CANCELLABLE_FROM = frozenset(
    src for (src, dst) in _WHITELIST if dst == S.CANCELLED
)


def can_transition(current: DeliveryStatus, target: DeliveryStatus, role: Role) -> bool:
    """Check whether ``role`` may move a note from ``current`` to ``target``.

    Args:
        current: Status the note is in now
        target: Requested status
        role: Acting role

    Returns:
        False for same-status requests, exits from cancelled and late
        cancellations; True for the elevated role on any other pair;
        otherwise whether the role is whitelisted for the edge.
    """
    current = DeliveryStatus(current)
    target = DeliveryStatus(target)
    role = Role(role)

    if current == target or current == S.CANCELLED:
        return False
    if target == S.CANCELLED and current not in CANCELLABLE_FROM:
        return False
    if role == ELEVATED_ROLE:
        return True
    return role in TRANSITION_PERMISSIONS[(current, target)]


def allowed_targets(current: DeliveryStatus, role: Role) -> List[DeliveryStatus]:
    """Statuses a UI may offer to ``role`` for a note currently in ``current``.

    The elevated role is offered the regular workflow edges (forward step and
    cancellation) rather than every reachable status.
    """
    current = DeliveryStatus(current)
    role = Role(role)

    targets = []
    for (src, dst), roles in _WHITELIST.items():
        if src != current:
            continue
        if role == ELEVATED_ROLE or role in roles:
            targets.append(dst)
    return targets
