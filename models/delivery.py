"""Delivery Note Models.

This module defines the Pydantic models for the delivery lifecycle:
- DeliveryStatus / Role: workflow states and acting roles
- Actor: identity context supplied by the caller
- DeliveryNote: one truckload delivered to a client
- FormulaSpec / MaterialPrice: read-only reference data
- Alert: leakage notice routed to an audience role
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DeliveryStatus(str, Enum):
    """Workflow status of a delivery note."""
    PLANNING = "planning"
    PRODUCTION = "production"
    TECHNICAL_VALIDATION = "technical_validation"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    INVOICED = "invoiced"
    CANCELLED = "cancelled"  # Terminal, never deleted


class Role(str, Enum):
    """Acting role, as resolved by the host application."""
    CEO = "ceo"
    OPERATIONS_DIRECTOR = "operations_director"
    PLANT_OPERATOR = "plant_operator"
    TECHNICAL_MANAGER = "technical_manager"
    ADMIN_AGENT = "admin_agent"
    SUPERVISOR = "supervisor"


class Actor(BaseModel):
    """Who is asking for a transition. Not authenticated here."""
    user_id: str = Field(..., description="Acting user identifier")
    role: Role = Field(..., description="Acting role")


class DeliveryNote(BaseModel):
    """One concrete truckload delivered to a client.

    Derived fields (real_unit_cost, margin_pct, margin_alert) are written
    once, at the delivered transition.
    """
    note_id: str = Field(..., description="Delivery note number (e.g. 'BL-2026-0042')")
    client_id: str = Field(..., description="Client reference")
    client_name: Optional[str] = Field(default=None, description="Client display name")
    formula_id: str = Field(..., description="Concrete formula reference (e.g. 'B25')")
    volume_m3: Decimal = Field(..., description="Delivered volume in m³")

    # Metered consumption for this truckload
    cement_actual_kg: Optional[Decimal] = Field(default=None, description="Actual cement consumed (kg)")
    admixture_actual_l: Optional[Decimal] = Field(default=None, description="Actual admixture consumed (L)")

    sale_price_m3: Optional[Decimal] = Field(default=None, description="Declared sale price per m³")
    workflow_status: DeliveryStatus = Field(default=DeliveryStatus.PLANNING)

    # Derived at delivery
    real_unit_cost: Optional[Decimal] = Field(default=None, description="Real cost per m³ (DH)")
    margin_pct: Optional[Decimal] = Field(default=None, description="Margin as a percentage of sale price")
    margin_alert: bool = False

    # Scheduling / logistics
    delivery_date: date
    planned_time: Optional[time] = None
    departure_time: Optional[time] = None
    return_time: Optional[time] = None
    vehicle_id: Optional[str] = None

    # Transition stamps
    validated: bool = False
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    invoice_generated: bool = False
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    linked_batch_id: Optional[str] = None

    @property
    def recorded_time(self) -> Optional[time]:
        """Departure time if known, otherwise the planned time."""
        return self.departure_time or self.planned_time


class FormulaSpec(BaseModel):
    """Theoretical material quantities per m³ for one formula."""
    formula_id: str
    cement_kg_m3: Decimal = Decimal("0")
    admixture_l_m3: Decimal = Decimal("0")
    sand_kg_m3: Decimal = Decimal("0")
    gravel_kg_m3: Decimal = Decimal("0")
    water_l_m3: Decimal = Decimal("0")


class MaterialPrice(BaseModel):
    """Current unit price of one material, keyed by its catalog name."""
    material: str = Field(..., description="Material key (e.g. 'ciment', 'sable')")
    unit_price: Decimal = Field(..., description="Price per tonne, litre or m³ depending on material")


class Alert(BaseModel):
    """A leakage notice. Created, never mutated."""
    alert_id: Optional[int] = None
    alert_type: str = "margin"
    severity: str = "critical"
    title: str
    message: str
    reference_id: str = Field(..., description="Triggering delivery note id")
    reference_table: str = "delivery_notes"
    audience_role: Role
    created_at: Optional[datetime] = None


class TransitionResult(BaseModel):
    """Outcome of a successful transition."""
    note: DeliveryNote
    previous_status: DeliveryStatus
    alerts: List[Alert] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "note_id": self.note.note_id,
            "from": self.previous_status.value,
            "to": self.note.workflow_status.value,
            "alerts": len(self.alerts),
            "warnings": len(self.warnings),
        }
