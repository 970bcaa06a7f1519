"""Delivery note lifecycle endpoints.

Callers are expected to have authenticated the user already; the acting
identity and role travel in the request body.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.services.engine import get_controller, get_delivery_store
from core.errors import InvalidTransition, NotFound, PermissionDenied, TransitionConflict
from lifecycle.controller import DeliveryLifecycleController
from lifecycle.permissions import allowed_targets
from models.delivery import Actor, Alert, DeliveryNote, DeliveryStatus, Role
from storage.deliveries import DeliveryStore


router = APIRouter()


class TransitionRequest(BaseModel):
    """Request to move a delivery note to another status."""
    target_status: DeliveryStatus
    user_id: str = Field(..., description="Acting user")
    role: Role = Field(..., description="Acting role")
    extra_fields: Optional[Dict[str, Any]] = Field(
        None, description="planned_time, departure_time, return_time, vehicle_id"
    )


class TransitionResponse(BaseModel):
    """Transition outcome."""
    note: DeliveryNote
    previous_status: DeliveryStatus
    alerts: List[Alert]
    warnings: List[str]


@router.get("/{note_id}", response_model=DeliveryNote)
async def get_delivery_note(
    note_id: str,
    store: DeliveryStore = Depends(get_delivery_store),
) -> DeliveryNote:
    """Get a delivery note."""
    note = store.get(note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Delivery note not found")
    return note


@router.get("/{note_id}/allowed-transitions")
async def get_allowed_transitions(
    note_id: str,
    role: Role,
    store: DeliveryStore = Depends(get_delivery_store),
) -> Dict[str, Any]:
    """Statuses the given role may move this note to."""
    note = store.get(note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Delivery note not found")
    return {
        "note_id": note_id,
        "current_status": note.workflow_status.value,
        "allowed": [s.value for s in allowed_targets(note.workflow_status, role)],
    }


@router.post("/{note_id}/transition", response_model=TransitionResponse)
async def transition_delivery_note(
    note_id: str,
    request: TransitionRequest,
    controller: DeliveryLifecycleController = Depends(get_controller),
) -> TransitionResponse:
    """Apply a workflow transition."""
    try:
        result = controller.transition(
            note_id,
            request.target_status,
            Actor(user_id=request.user_id, role=request.role),
            extra_fields=request.extra_fields,
        )
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except TransitionConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidTransition as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TransitionResponse(
        note=result.note,
        previous_status=result.previous_status,
        alerts=result.alerts,
        warnings=result.warnings,
    )


@router.get("/{note_id}/alerts", response_model=List[Alert])
async def list_delivery_alerts(
    note_id: str,
    store: DeliveryStore = Depends(get_delivery_store),
) -> List[Alert]:
    """Alerts raised for a delivery note."""
    return store.list_alerts(reference_id=note_id)
