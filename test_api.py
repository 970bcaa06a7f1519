"""
API Tests

Exercises the FastAPI routes against a temporary SQLite database by
overriding the engine dependencies.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from api.routes import health
from api.server import create_app
from api.services import engine
from conftest import make_batch, make_note
from core.config import Settings
from models.delivery import DeliveryStatus
from storage.batches import BatchStore
from storage.deliveries import DeliveryStore


FEED = (
    "BatchNumber;DateTime;Client;Formula;Cement;Sand;Gravel;Water;Additives;TotalVolume;Operator\n"
    "N1042;14/02/2026 10:30;SARL Beton Plus;B25;2800;6240;8160;1400;24;8;Karim\n"
    "N1043;not a date;SARL Beton Plus;B25;2800;6240;8160;1400;24;8;Karim\n"
)


@pytest.fixture
def client(db_path, sqlite_reference):
    app = create_app()
    app.dependency_overrides[engine.get_delivery_store] = lambda: DeliveryStore(db_path)
    app.dependency_overrides[engine.get_batch_store] = lambda: BatchStore(db_path)
    app.dependency_overrides[engine.get_reference_data] = lambda: sqlite_reference
    return TestClient(app)


class TestHealth:
    """Health endpoints."""

    def test_live(self, client):
        response = client.get("/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_health_reports_storage(self, client, db_path, monkeypatch):
        monkeypatch.setattr(health, "get_settings", lambda: Settings(db_path=db_path))
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"] == {"api": "up", "storage": "up"}

    def test_health_degraded_without_schema(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "get_settings", lambda: Settings(db_path=tmp_path / "empty.db"))
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["services"]["storage"] == "down"


class TestDeliveryRoutes:
    """Lifecycle endpoints."""

    def test_get_note(self, client, delivery_store):
        delivery_store.insert(make_note())
        response = client.get("/deliveries/BL-2026-0001")
        assert response.status_code == 200
        assert response.json()["workflow_status"] == "planning"

    def test_get_missing_note(self, client):
        assert client.get("/deliveries/BL-MISSING").status_code == 404

    def test_allowed_transitions(self, client, delivery_store):
        delivery_store.insert(make_note())
        data = client.get(
            "/deliveries/BL-2026-0001/allowed-transitions", params={"role": "operations_director"}
        ).json()
        assert data == {
            "note_id": "BL-2026-0001",
            "current_status": "planning",
            "allowed": ["production"],
        }

    def test_delivery_with_leakage(self, client, delivery_store):
        delivery_store.insert(make_note(
            workflow_status=DeliveryStatus.IN_TRANSIT, sale_price_m3=Decimal("800"),
        ))

        response = client.post("/deliveries/BL-2026-0001/transition", json={
            "target_status": "delivered",
            "user_id": "u-admin",
            "role": "admin_agent",
            "extra_fields": {"return_time": "12:15"},
        })

        assert response.status_code == 200
        data = response.json()
        assert data["previous_status"] == "in_transit"
        assert data["note"]["workflow_status"] == "delivered"
        assert Decimal(data["note"]["real_unit_cost"]) == Decimal("703.15")
        assert Decimal(data["note"]["margin_pct"]) == Decimal("12.11")
        assert data["note"]["margin_alert"] is True
        assert data["note"]["return_time"] == "12:15:00"
        assert sorted(a["audience_role"] for a in data["alerts"]) == ["ceo", "supervisor"]

        alerts = client.get("/deliveries/BL-2026-0001/alerts").json()
        assert len(alerts) == 2
        assert all(a["severity"] == "critical" for a in alerts)

    @pytest.mark.parametrize("payload,status_code", [
        ({"target_status": "production", "user_id": "u", "role": "plant_operator"}, 403),
        ({"target_status": "planning", "user_id": "u", "role": "ceo"}, 400),
        ({"target_status": "production", "user_id": "u", "role": "operations_director",
          "extra_fields": {"volume_m3": 2}}, 400),
        ({"target_status": "shipped", "user_id": "u", "role": "ceo"}, 422),
        ({"target_status": "production", "user_id": "u", "role": "intern"}, 422),
    ])
    def test_rejections(self, client, delivery_store, payload, status_code):
        delivery_store.insert(make_note())
        response = client.post("/deliveries/BL-2026-0001/transition", json=payload)
        assert response.status_code == status_code
        assert delivery_store.get("BL-2026-0001").workflow_status == DeliveryStatus.PLANNING

    def test_store_override_reaches_controller(self, client, db_path, delivery_store):
        delivery_store.insert(make_note())
        seen = []

        class RecordingStore(DeliveryStore):
            def update_if_status(self, note, expected_status):
                seen.append(note.note_id)
                return super().update_if_status(note, expected_status)

        client.app.dependency_overrides[engine.get_delivery_store] = lambda: RecordingStore(db_path)
        response = client.post("/deliveries/BL-2026-0001/transition", json={
            "target_status": "production", "user_id": "u-ops", "role": "operations_director",
        })

        assert response.status_code == 200
        assert seen == ["BL-2026-0001"]

    def test_transition_missing_note(self, client):
        response = client.post("/deliveries/BL-MISSING/transition", json={
            "target_status": "production", "user_id": "u", "role": "ceo",
        })
        assert response.status_code == 404


class TestBatchRoutes:
    """Feed import and reconciliation endpoints."""

    def test_import_and_auto_link(self, client, delivery_store):
        delivery_store.insert(make_note())

        response = client.post(
            "/batches/import",
            files={"file": ("plant_0214.csv", FEED.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 200
        report = response.json()
        assert report["source_file"] == "plant_0214.csv"
        assert report["imported"] == 1
        assert report["failed"] == 1
        assert report["auto_linked"] == 1
        assert report["errors"][0]["field"] == "DateTime"

        batch_id = report["inserted_ids"][0]
        batch = client.get(f"/batches/{batch_id}").json()
        assert batch["link_status"] == "auto_linked"
        assert batch["linked_note_id"] == "BL-2026-0001"

    def test_import_without_linking(self, client, delivery_store):
        delivery_store.insert(make_note())
        response = client.post(
            "/batches/import",
            params={"auto_link": "false"},
            files={"file": ("feed.csv", FEED.encode("utf-8"), "text/csv")},
        )
        assert response.json()["auto_linked"] == 0
        assert delivery_store.get("BL-2026-0001").linked_batch_id is None

    def test_import_unreadable_file(self, client):
        response = client.post(
            "/batches/import",
            files={"file": ("feed.csv", b"foo;bar\n1;2\n", "text/csv")},
        )
        assert response.status_code == 400
        assert "missing columns" in response.json()["detail"]

    def test_reconcile_run(self, client, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())

        data = client.post("/batches/reconcile").json()

        assert data["processed"] == 1
        assert data["auto_linked"] == 1
        assert data["run_id"].startswith("run-")

    def test_auto_link_and_results(self, client, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())

        result = client.post("/batches/PB-0001/auto-link").json()
        assert result["status"] == "auto_linked"
        assert result["confidence"] == 100
        assert result["scores"]["total"] == 100

        client.post("/batches/PB-0001/auto-link", params={"force": "true"})
        results = client.get("/batches/PB-0001/results").json()
        assert [r["superseded"] for r in results] == [True, False]

    def test_auto_link_missing_batch(self, client):
        assert client.post("/batches/PB-MISSING/auto-link").status_code == 404

    def test_manual_link(self, client, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())

        response = client.post("/batches/PB-0001/link", json={"note_id": "BL-2026-0001", "linked_by": "u-ops"})

        assert response.status_code == 200
        assert response.json()["status"] == "manual_linked"
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0001"

    def test_manual_link_conflict(self, client, batch_store, delivery_store):
        delivery_store.insert(make_note(linked_batch_id="PB-OTHER"))
        batch_store.insert(make_batch())
        response = client.post("/batches/PB-0001/link", json={"note_id": "BL-2026-0001", "linked_by": "u-ops"})
        assert response.status_code == 409

    def test_missing_batch(self, client):
        assert client.get("/batches/PB-MISSING").status_code == 404
