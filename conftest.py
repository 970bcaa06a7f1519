"""Shared pytest fixtures: temporary database, stores and reference data."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from core.errors import ReferenceDataUnavailable
from models.delivery import DeliveryNote, DeliveryStatus, FormulaSpec, MaterialPrice
from models.production import ProductionBatch
from storage.batches import BatchStore
from storage.db import init_db
from storage.deliveries import DeliveryStore
from storage.reference import SqliteReferenceData, seed_reference_data


B25 = FormulaSpec(
    formula_id="B25",
    cement_kg_m3=Decimal("350"),
    admixture_l_m3=Decimal("3"),
    sand_kg_m3=Decimal("780"),
    gravel_kg_m3=Decimal("1020"),
    water_l_m3=Decimal("175"),
)

PRICES = [
    MaterialPrice(material="Ciment", unit_price=Decimal("1200")),
    MaterialPrice(material="Adjuvant", unit_price=Decimal("15")),
    MaterialPrice(material="Sable", unit_price=Decimal("120")),
    MaterialPrice(material="Gravier", unit_price=Decimal("140")),
    MaterialPrice(material="Eau", unit_price=Decimal("10")),
]

# 8 m³ of B25 at the theoretical cement/admixture dosage costs 703.15 DH/m³:
# cement 420 + admixture 45 + sand 93.60 + gravel 142.80 + water 1.75
B25_UNIT_COST = Decimal("703.15")


class FakeReferenceData:
    """In-memory ReferenceDataProvider."""

    def __init__(
        self,
        formulas: Optional[Dict[str, FormulaSpec]] = None,
        prices: Optional[List[MaterialPrice]] = None,
        unavailable: bool = False,
    ):
        self.formulas = formulas if formulas is not None else {"B25": B25}
        self.prices = prices if prices is not None else list(PRICES)
        self.unavailable = unavailable

    def get_formula_spec(self, formula_id: str) -> Optional[FormulaSpec]:
        if self.unavailable:
            raise ReferenceDataUnavailable("catalog service timed out")
        return self.formulas.get(formula_id)

    def get_current_prices(self) -> List[MaterialPrice]:
        if self.unavailable:
            raise ReferenceDataUnavailable("price service timed out")
        return list(self.prices)


def make_note(note_id: str = "BL-2026-0001", **overrides) -> DeliveryNote:
    """A B25 delivery of 8 m³ on 2026-02-14, planned at 10:30."""
    data = dict(
        note_id=note_id,
        client_id="CLI-001",
        client_name="SARL Beton Plus",
        formula_id="B25",
        volume_m3=Decimal("8"),
        cement_actual_kg=Decimal("2800"),
        admixture_actual_l=Decimal("24"),
        sale_price_m3=Decimal("900"),
        delivery_date=date(2026, 2, 14),
        planned_time=time(10, 30),
    )
    data.update(overrides)
    return DeliveryNote(**data)


def make_batch(batch_id: str = "PB-0001", **overrides) -> ProductionBatch:
    """A B25 batch of 8 m³ for SARL Beton Plus at 2026-02-14 10:30."""
    data = dict(
        batch_id=batch_id,
        batch_number=batch_id.replace("PB-", "N"),
        batch_datetime=datetime(2026, 2, 14, 10, 30),
        client_name="SARL Beton Plus",
        formula="B25",
        cement_kg=Decimal("2800"),
        total_volume_m3=Decimal("8"),
        operator_name="Operator 1",
    )
    data.update(overrides)
    return ProductionBatch(**data)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "plant_ops_test.db"
    init_db(path)
    return path


@pytest.fixture
def delivery_store(db_path) -> DeliveryStore:
    return DeliveryStore(db_path)


@pytest.fixture
def batch_store(db_path) -> BatchStore:
    return BatchStore(db_path)


@pytest.fixture
def sqlite_reference(db_path) -> SqliteReferenceData:
    seed_reference_data([B25], PRICES, db_path=db_path)
    return SqliteReferenceData(db_path)


@pytest.fixture
def fake_reference() -> FakeReferenceData:
    return FakeReferenceData()


@pytest.fixture
def note_in_transit(delivery_store) -> DeliveryNote:
    return delivery_store.insert(make_note(workflow_status=DeliveryStatus.IN_TRANSIT))
