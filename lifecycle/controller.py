"""
Delivery Lifecycle Controller

State machine for delivery notes:

    planning → production → technical_validation → in_transit → delivered → invoiced
         ╲            ╲                ╲
          └────────────┴────────────────┴──→ cancelled (terminal)

A transition is: load note → check permission → apply side effects for the
target status → conditional update on the expected "from" status → emit
alerts. Nothing is written before the conditional update, so a rejected
request leaves the note untouched. Alert emission happens after the status
commit and never undoes it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from core.errors import InvalidTransition, NotFound, PermissionDenied, TransitionConflict
from core.observability.logging import get_logger, with_correlation
from lifecycle.costing import CENT, ReferenceDataProvider, compute_real_unit_cost
from lifecycle.leakage import evaluate_leakage
from lifecycle.permissions import can_transition
from models.delivery import (
    Actor,
    Alert,
    DeliveryNote,
    DeliveryStatus,
    Role,
    TransitionResult,
)


logger = get_logger(__name__)

# Fields a caller may set alongside a transition.
EXTRA_FIELDS_ALLOWED = frozenset({"planned_time", "departure_time", "return_time", "vehicle_id"})

LEAKAGE_ALERT_TITLE = "MARGIN LEAKAGE"
LEAKAGE_AUDIENCE = (Role.CEO, Role.SUPERVISOR)


class DeliveryRepository(Protocol):
    """What the controller needs from the persistent store."""

    def get(self, note_id: str) -> Optional[DeliveryNote]:
        ...

    def update_if_status(self, note: DeliveryNote, expected_status: DeliveryStatus) -> bool:
        ...

    def insert_alert(self, alert: Alert) -> Alert:
        ...


def leakage_message(note_id: str, real_unit_cost) -> str:
    return f"Delivery note {note_id}: real unit cost {real_unit_cost:.2f} DH/m³ - insufficient margin"


class DeliveryLifecycleController:
    """Validates and applies delivery note transitions.

    Args:
        store: Delivery note / alert repository
        reference: Formula spec and price list provider
    """

    def __init__(self, store: DeliveryRepository, reference: ReferenceDataProvider):
        self.store = store
        self.reference = reference

    def transition(
        self,
        note_id: str,
        target_status: DeliveryStatus,
        actor: Actor,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> TransitionResult:
        """Move a delivery note to ``target_status``.

        Args:
            note_id: Delivery note identifier
            target_status: Requested status
            actor: Acting user and role (already authenticated by the caller)
            extra_fields: Optional logistics fields to set in the same write

        Returns:
            TransitionResult with the updated note, emitted alerts and any
            non-fatal warnings (cost not computed, alert not persisted).

        Raises:
            NotFound: The note does not exist
            PermissionDenied: The role is not whitelisted for this edge
            InvalidTransition: Same-status request or unknown extra fields
            TransitionConflict: The status changed before our update landed
        """
        target = DeliveryStatus(target_status)

        with with_correlation(delivery_note_id=note_id, actor_role=actor.role.value, stage=target.value):
            note = self.store.get(note_id)
            if note is None:
                raise NotFound("delivery note", note_id)

            current = note.workflow_status
            if current == target:
                raise InvalidTransition(f"Delivery note {note_id} is already '{target.value}'")

            if not can_transition(current, target, actor.role):
                logger.warning(
                    f"Transition denied: {current.value} → {target.value}",
                    extra_fields={"user_id": actor.user_id},
                )
                raise PermissionDenied(actor.role.value, current.value, target.value)

            updates = self._validate_extra_fields(extra_fields)
            warnings: List[str] = []
            now = datetime.utcnow()
            leakage_flagged = False

            updates["workflow_status"] = target

            if target == DeliveryStatus.TECHNICAL_VALIDATION:
                updates.update(validated=True, validated_by=actor.user_id, validated_at=now)

            elif target == DeliveryStatus.DELIVERED:
                leakage_flagged = self._apply_delivery_costing(note, updates, warnings)

            elif target == DeliveryStatus.INVOICED:
                updates["invoice_generated"] = True

            elif target == DeliveryStatus.CANCELLED:
                updates.update(cancelled_by=actor.user_id, cancelled_at=now)

            # Re-validate so caller-supplied values (e.g. "10:30") get coerced
            try:
                updated = DeliveryNote.model_validate({**note.model_dump(), **updates})
            except ValidationError as e:
                raise InvalidTransition(f"Invalid transition fields: {e}") from e

            if not self.store.update_if_status(updated, expected_status=current):
                latest = self.store.get(note_id)
                raise TransitionConflict(
                    note_id,
                    current.value,
                    latest.workflow_status.value if latest else None,
                )

            logger.info(
                f"Delivery note moved {current.value} → {target.value}",
                extra_fields={"user_id": actor.user_id},
            )

            alerts: List[Alert] = []
            if leakage_flagged:
                alerts = self._emit_leakage_alerts(updated, warnings)

            return TransitionResult(
                note=updated,
                previous_status=current,
                alerts=alerts,
                warnings=warnings,
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _validate_extra_fields(self, extra_fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not extra_fields:
            return {}
        unknown = sorted(set(extra_fields) - EXTRA_FIELDS_ALLOWED)
        if unknown:
            raise InvalidTransition(f"Fields not settable during a transition: {', '.join(unknown)}")
        return dict(extra_fields)

    def _apply_delivery_costing(
        self,
        note: DeliveryNote,
        updates: Dict[str, Any],
        warnings: List[str],
    ) -> bool:
        """Fill cost and margin into ``updates``. Returns True when leakage is flagged."""
        if note.real_unit_cost is not None:
            logger.info("Real unit cost already recorded; not recomputed")
            return False

        cost = compute_real_unit_cost(note, self.reference)
        if cost is None:
            warnings.append("Real unit cost could not be computed; derived fields left empty")
            return False

        # Flag on the unrounded cost; only the stored figure is rounded
        leakage = evaluate_leakage(cost, note.sale_price_m3)
        cost = cost.quantize(CENT)
        updates["real_unit_cost"] = cost
        updates["margin_pct"] = leakage.margin_pct

        if leakage.flagged:
            updates["margin_alert"] = True
            logger.warning(
                "Margin leakage detected",
                extra_fields={
                    "real_unit_cost": str(cost),
                    "margin_pct": str(leakage.margin_pct),
                    "sale_price_m3": str(note.sale_price_m3),
                },
            )
        return leakage.flagged

    def _emit_leakage_alerts(self, note: DeliveryNote, warnings: List[str]) -> List[Alert]:
        emitted = []
        for role in LEAKAGE_AUDIENCE:
            alert = Alert(
                alert_type="margin",
                severity="critical",
                title=LEAKAGE_ALERT_TITLE,
                message=leakage_message(note.note_id, note.real_unit_cost),
                reference_id=note.note_id,
                reference_table="delivery_notes",
                audience_role=role,
            )
            try:
                emitted.append(self.store.insert_alert(alert))
            except Exception as e:
                logger.warning(
                    f"Failed to persist leakage alert for {role.value}: {e}",
                    exc_info=True,
                )
                warnings.append(f"Leakage alert for {role.value} was not persisted: {e}")
        return emitted
