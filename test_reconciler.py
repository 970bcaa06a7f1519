"""
Batch Reconciler Tests

Runs the reconciler against a real SQLite database:
1. Auto-link writes both sides of the link
2. Pending keeps the proposal on the batch only
3. No candidates / low scores leave the batch available
4. Ties at the auto-link level go to a human
5. Settled batches are not re-scored unless forced
6. Manual links and their guards
7. A note claimed by one batch cannot be taken by a concurrent run
"""

from datetime import date, datetime, time
from decimal import Decimal

import pytest

from batch_matcher.reconciler import BatchReconciler, decide, rank_candidates, summarize_scores
from conftest import make_batch, make_note
from core.errors import InvalidTransition, NotFound
from models.delivery import DeliveryStatus
from models.production import LinkStatus
from storage.deliveries import DeliveryStore


class InterleavingDeliveryStore(DeliveryStore):
    """Runs ``on_candidates_read`` once, right after the candidate query."""

    def __init__(self, db_path):
        super().__init__(db_path)
        self.on_candidates_read = None

    def list_candidates(self, day, exclude_linked_to_other=None):
        notes = super().list_candidates(day, exclude_linked_to_other)
        hook, self.on_candidates_read = self.on_candidates_read, None
        if hook is not None:
            hook()
        return notes


@pytest.fixture
def reconciler(batch_store, delivery_store):
    return BatchReconciler(batch_store, delivery_store)


class TestReconcileBatch:
    """Single-batch reconciliation."""

    def test_auto_link_attaches_note(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.AUTO_LINKED
        assert result.note_id == "BL-2026-0001"
        assert result.confidence == 100
        assert result.result_id is not None

        batch = batch_store.get("PB-0001")
        assert batch.link_status == LinkStatus.AUTO_LINKED
        assert batch.linked_note_id == "BL-2026-0001"
        assert batch.link_confidence == 100
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0001"

    def test_link_does_not_touch_note_status(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(workflow_status=DeliveryStatus.PRODUCTION))
        batch_store.insert(make_batch())
        reconciler.reconcile_batch("PB-0001")
        assert delivery_store.get("BL-2026-0001").workflow_status == DeliveryStatus.PRODUCTION

    def test_pending_keeps_proposal_on_batch_only(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(
            client_name="SARL Beton Plus Construction",
            volume_m3=Decimal("8.39"),
        ))
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.PENDING
        assert result.confidence == 85
        batch = batch_store.get("PB-0001")
        assert batch.link_status == LinkStatus.PENDING
        assert batch.linked_note_id == "BL-2026-0001"
        assert delivery_store.get("BL-2026-0001").linked_batch_id is None

    def test_no_candidates_on_date(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(delivery_date=date(2026, 2, 15)))
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.NO_MATCH
        assert result.note_id is None
        assert result.confidence == 0
        assert result.candidates == []
        assert batch_store.get("PB-0001").linked_note_id is None

    def test_low_score_is_no_match(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(
            client_name="Ciments du Maroc",
            formula_id="B40",
            planned_time=time(16, 0),
        ))
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.NO_MATCH
        assert result.note_id == "BL-2026-0001"
        assert result.confidence == 25
        assert batch_store.get("PB-0001").linked_note_id is None
        assert delivery_store.get("BL-2026-0001").linked_batch_id is None

    def test_cancelled_notes_are_not_candidates(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(workflow_status=DeliveryStatus.CANCELLED))
        batch_store.insert(make_batch())
        assert reconciler.reconcile_batch("PB-0001").status == LinkStatus.NO_MATCH

    def test_notes_linked_elsewhere_are_not_candidates(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(linked_batch_id="PB-OTHER"))
        batch_store.insert(make_batch())
        assert reconciler.reconcile_batch("PB-0001").status == LinkStatus.NO_MATCH

    def test_best_candidate_wins(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note("BL-2026-0001", planned_time=time(11, 15)))
        delivery_store.insert(make_note("BL-2026-0002", planned_time=time(10, 35)))
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.note_id == "BL-2026-0002"
        assert [c.note_id for c in result.candidates] == ["BL-2026-0002", "BL-2026-0001"]

    def test_tie_at_top_goes_to_review(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note("BL-2026-0002"))
        delivery_store.insert(make_note("BL-2026-0001"))
        batch_store.insert(make_batch())

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.PENDING
        assert result.note_id == "BL-2026-0001"
        assert "ambiguous" in result.reason
        assert delivery_store.get("BL-2026-0001").linked_batch_id is None
        assert delivery_store.get("BL-2026-0002").linked_batch_id is None

    def test_candidate_list_is_capped(self, reconciler, batch_store, delivery_store):
        for i in range(8):
            delivery_store.insert(make_note(f"BL-2026-{i:04d}", planned_time=time(6 + i, 0)))
        batch_store.insert(make_batch())
        result = reconciler.reconcile_batch("PB-0001")
        assert len(result.candidates) == 5

    def test_missing_batch(self, reconciler):
        with pytest.raises(NotFound):
            reconciler.reconcile_batch("PB-MISSING")


class TestRerun:
    """Idempotence and forced re-scoring."""

    def test_settled_batch_is_not_rescored(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        first = reconciler.reconcile_batch("PB-0001")

        again = reconciler.reconcile_batch("PB-0001")

        assert again.result_id == first.result_id
        assert len(batch_store.list_results("PB-0001")) == 1

    def test_forced_rerun_supersedes_previous_result(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        first = reconciler.reconcile_batch("PB-0001")

        second = reconciler.reconcile_batch("PB-0001", force=True)

        results = batch_store.list_results("PB-0001")
        assert [r.result_id for r in results] == [first.result_id, second.result_id]
        assert results[0].superseded is True
        assert results[1].superseded is False
        assert batch_store.current_result("PB-0001").result_id == second.result_id
        # The batch's own note is still a candidate on re-run
        assert second.status == LinkStatus.AUTO_LINKED

    def test_forced_rerun_detaches_old_note(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        reconciler.reconcile_batch("PB-0001")

        # The note is cancelled afterwards; a forced re-run finds nothing
        delivery_store.update_if_status(
            make_note(workflow_status=DeliveryStatus.CANCELLED),
            expected_status=DeliveryStatus.PLANNING,
        )
        result = reconciler.reconcile_batch("PB-0001", force=True)

        assert result.status == LinkStatus.NO_MATCH
        assert batch_store.get("PB-0001").linked_note_id is None
        assert delivery_store.get("BL-2026-0001").linked_batch_id is None

    def test_scores_survive_storage(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        reconciler.reconcile_batch("PB-0001")

        stored = batch_store.current_result("PB-0001")
        assert stored.scores.total == 100
        assert stored.candidates[0].scores.client_score == 35


class TestReconcileUnlinked:
    """Batch runs over the unlinked backlog."""

    def test_summary_counts(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note("BL-2026-0001", planned_time=time(8, 0)))
        delivery_store.insert(make_note(
            "BL-2026-0002",
            planned_time=time(14, 0),
            client_name="SARL Beton Plus Construction",
            volume_m3=Decimal("8.39"),
        ))
        batch_store.insert(make_batch("PB-0001", batch_datetime=datetime(2026, 2, 14, 8, 0)))
        batch_store.insert(make_batch("PB-0002", batch_datetime=datetime(2026, 2, 14, 14, 0)))
        batch_store.insert(make_batch("PB-0003", batch_datetime=datetime(2026, 3, 1, 9, 0)))

        summary = reconciler.reconcile_unlinked()

        assert summary.run_id.startswith("run-")
        assert summary.processed == 3
        assert summary.auto_linked == 1
        assert summary.pending == 1
        assert summary.no_match == 1
        assert summary.errors == []

    def test_linked_batches_are_not_listed(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        reconciler.reconcile_unlinked()

        assert batch_store.list_unlinked() == []
        assert reconciler.reconcile_unlinked().processed == 0

    def test_no_match_batches_are_retried(self, reconciler, batch_store, delivery_store):
        batch_store.insert(make_batch())
        assert reconciler.reconcile_unlinked().no_match == 1

        # The note shows up later
        delivery_store.insert(make_note())
        summary = reconciler.reconcile_unlinked()

        assert summary.auto_linked == 1
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0001"


class TestManualLink:
    """Human confirmation or override."""

    def test_confirms_pending_proposal(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(client_name="SARL Beton Plus Construction", volume_m3=Decimal("8.39")))
        batch_store.insert(make_batch())
        reconciler.reconcile_batch("PB-0001")

        result = reconciler.link_manually("PB-0001", "BL-2026-0001", linked_by="u-ops")

        assert result.status == LinkStatus.MANUAL_LINKED
        assert result.confidence == 85
        assert result.reason == "linked by u-ops"
        batch = batch_store.get("PB-0001")
        assert batch.link_status == LinkStatus.MANUAL_LINKED
        assert batch.linked_note_id == "BL-2026-0001"
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0001"

    def test_override_moves_link(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note("BL-2026-0001"))
        delivery_store.insert(make_note("BL-2026-0002", planned_time=time(15, 0)))
        batch_store.insert(make_batch())
        reconciler.reconcile_batch("PB-0001")
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0001"

        reconciler.link_manually("PB-0001", "BL-2026-0002", linked_by="u-ceo")

        assert delivery_store.get("BL-2026-0001").linked_batch_id is None
        assert delivery_store.get("BL-2026-0002").linked_batch_id == "PB-0001"

    def test_manual_link_is_not_rescored(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(planned_time=time(18, 0)))
        batch_store.insert(make_batch())
        reconciler.link_manually("PB-0001", "BL-2026-0001", linked_by="u-ops")

        result = reconciler.reconcile_batch("PB-0001")

        assert result.status == LinkStatus.MANUAL_LINKED
        assert len(batch_store.list_results("PB-0001")) == 1

    def test_cancelled_note_rejected(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(workflow_status=DeliveryStatus.CANCELLED))
        batch_store.insert(make_batch())
        with pytest.raises(InvalidTransition):
            reconciler.link_manually("PB-0001", "BL-2026-0001", linked_by="u-ops")

    def test_note_linked_elsewhere_rejected(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(linked_batch_id="PB-OTHER"))
        batch_store.insert(make_batch())
        with pytest.raises(InvalidTransition):
            reconciler.link_manually("PB-0001", "BL-2026-0001", linked_by="u-ops")
        assert batch_store.get("PB-0001").link_status is None

    @pytest.mark.parametrize("batch_id,note_id", [("PB-MISSING", "BL-2026-0001"), ("PB-0001", "BL-MISSING")])
    def test_missing_side(self, reconciler, batch_store, delivery_store, batch_id, note_id):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())
        with pytest.raises(NotFound):
            reconciler.link_manually(batch_id, note_id, linked_by="u-ops")


class TestHelpers:
    """Pure ranking helpers."""

    def test_rank_breaks_ties_by_note_id(self):
        ranked = rank_candidates(make_batch(), [make_note("BL-B"), make_note("BL-A")])
        assert [c.note_id for c in ranked] == ["BL-A", "BL-B"]

    def test_tie_below_auto_link_keeps_classification(self):
        notes = [
            make_note("BL-A", client_name="SARL Beton Plus Construction", volume_m3=Decimal("8.39")),
            make_note("BL-B", client_name="SARL Beton Plus Construction", volume_m3=Decimal("8.39")),
        ]
        best, status, reason = decide(rank_candidates(make_batch(), notes))
        assert best.note_id == "BL-A"
        assert status == LinkStatus.PENDING
        assert reason is None

    def test_decide_without_candidates(self):
        best, status, reason = decide([])
        assert best is None
        assert status == LinkStatus.NO_MATCH

    def test_summarize_scores(self):
        scores = rank_candidates(make_batch(), [make_note()])[0].scores
        assert summarize_scores(scores) == "date=25 client=35 volume=25 formula=15 total=100"
        assert summarize_scores(None) == "-"


class TestConcurrentLinking:
    """Two reconciliations racing for the same note."""

    def test_losing_batch_drops_to_pending(self, db_path, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch("PB-A"))
        batch_store.insert(make_batch("PB-B"))

        notes = InterleavingDeliveryStore(db_path)
        other = BatchReconciler(batch_store, DeliveryStore(db_path))
        outcomes = {}
        notes.on_candidates_read = lambda: outcomes.setdefault("PB-B", other.reconcile_batch("PB-B"))

        outcomes["PB-A"] = BatchReconciler(batch_store, notes).reconcile_batch("PB-A")

        assert outcomes["PB-B"].status == LinkStatus.AUTO_LINKED
        assert outcomes["PB-A"].status == LinkStatus.PENDING
        assert "linked to another batch" in outcomes["PB-A"].reason
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-B"
        assert batch_store.get("PB-A").link_status == LinkStatus.PENDING
        assert batch_store.get("PB-B").linked_note_id == "BL-2026-0001"

    def test_attach_refuses_note_held_by_another_batch(self, delivery_store):
        delivery_store.insert(make_note())
        assert delivery_store.attach_batch("BL-2026-0001", "PB-A") is True
        assert delivery_store.attach_batch("BL-2026-0001", "PB-A") is True
        assert delivery_store.attach_batch("BL-2026-0001", "PB-B") is False
        assert delivery_store.detach_batch("BL-2026-0001", "PB-B") is False
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-A"

    def test_manual_link_refuses_note_taken_after_read(self, batch_store, delivery_store):
        delivery_store.insert(make_note())
        batch_store.insert(make_batch())

        class ClaimedStore(DeliveryStore):
            def attach_batch(self, note_id, batch_id):
                super().attach_batch(note_id, "PB-OTHER")
                return super().attach_batch(note_id, batch_id)

        racing = BatchReconciler(batch_store, ClaimedStore(delivery_store.db_path))
        with pytest.raises(InvalidTransition):
            racing.link_manually("PB-0001", "BL-2026-0001", linked_by="u-ops")
        assert batch_store.get("PB-0001").link_status is None
        assert batch_store.list_results("PB-0001") == []


class TestStalePendingProposals:
    """Pending batches whose proposed note went to another batch."""

    def test_pending_with_free_note_is_not_listed(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(client_name="SARL Beton Plus Construction", volume_m3=Decimal("8.39")))
        batch_store.insert(make_batch())
        assert reconciler.reconcile_batch("PB-0001").status == LinkStatus.PENDING

        assert batch_store.list_unlinked() == []

    def test_pending_on_taken_note_is_listed_and_rerun(self, reconciler, batch_store, delivery_store):
        delivery_store.insert(make_note(client_name="SARL Beton Plus Construction", volume_m3=Decimal("8.39")))
        batch_store.insert(make_batch("PB-0001"))
        batch_store.insert(make_batch("PB-0002", batch_datetime=datetime(2026, 2, 14, 18, 0)))
        reconciler.reconcile_batch("PB-0001")
        reconciler.link_manually("PB-0002", "BL-2026-0001", linked_by="u-ops")

        assert [b.batch_id for b in batch_store.list_unlinked()] == ["PB-0001"]

        summary = reconciler.reconcile_unlinked()

        assert summary.processed == 1
        assert summary.no_match == 1
        assert batch_store.get("PB-0001").linked_note_id is None
        assert delivery_store.get("BL-2026-0001").linked_batch_id == "PB-0002"
