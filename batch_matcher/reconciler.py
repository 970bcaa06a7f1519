"""
Batch Reconciler

Orchestrates matching of machine-reported production batches against
delivery notes:

1. Load the batch and the same-day, non-cancelled notes not already linked
   to another batch
2. Score every candidate and keep the best (ties broken by note id)
3. Classify the best score; an exact tie at the auto-link level is
   downgraded to pending so a human picks
4. On auto-link, claim the note with a conditional update; if another
   batch got there first the decision drops to pending
5. Supersede the previous result, store the new one and update the batch's
   link bookkeeping

A batch that is already auto_linked or manual_linked is not re-scored
unless the caller forces it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from batch_matcher.classifier import classify
from batch_matcher.scorer import score_match
from core.errors import InvalidTransition, NotFound
from core.observability.logging import get_logger, with_correlation
from models.delivery import DeliveryNote, DeliveryStatus
from models.production import (
    LinkStatus,
    MatchCandidate,
    MatchResult,
    MatchScores,
    ProductionBatch,
)


logger = get_logger(__name__)

MAX_CANDIDATES_KEPT = 5
SETTLED_STATUSES = frozenset({LinkStatus.AUTO_LINKED, LinkStatus.MANUAL_LINKED})


class BatchRepository(Protocol):
    def get(self, batch_id: str) -> Optional[ProductionBatch]: ...
    def list_unlinked(self, limit: int = 500) -> List[ProductionBatch]: ...
    def update_link(self, batch_id: str, status: LinkStatus, note_id: Optional[str], confidence: Optional[int]) -> None: ...
    def record_result(self, result: MatchResult) -> MatchResult: ...
    def current_result(self, batch_id: str) -> Optional[MatchResult]: ...


class NoteRepository(Protocol):
    def get(self, note_id: str) -> Optional[DeliveryNote]: ...
    def list_candidates(self, day, exclude_linked_to_other: Optional[str] = None) -> List[DeliveryNote]: ...
    def attach_batch(self, note_id: str, batch_id: str) -> bool: ...
    def detach_batch(self, note_id: str, batch_id: str) -> bool: ...


@dataclass
class ReconciliationRunSummary:
    """Counts for one reconciliation pass."""
    run_id: str
    processed: int = 0
    auto_linked: int = 0
    pending: int = 0
    no_match: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def count(self, status: LinkStatus) -> None:
        self.processed += 1
        if status == LinkStatus.AUTO_LINKED:
            self.auto_linked += 1
        elif status == LinkStatus.PENDING:
            self.pending += 1
        elif status == LinkStatus.NO_MATCH:
            self.no_match += 1


def rank_candidates(batch: ProductionBatch, notes: List[DeliveryNote]) -> List[MatchCandidate]:
    """Score every note and sort best first (note id breaks ties)."""
    scored = [
        MatchCandidate(
            note_id=n.note_id,
            client_name=n.client_name,
            volume_m3=n.volume_m3,
            scores=score_match(batch, n),
        )
        for n in notes
    ]
    return sorted(scored, key=lambda c: (-c.scores.total, c.note_id))


def decide(candidates: List[MatchCandidate]) -> tuple:
    """Pick the best candidate and its link status.

    Returns:
        (best candidate or None, LinkStatus, reason or None)
    """
    if not candidates:
        return None, LinkStatus.NO_MATCH, "no delivery note on the batch date"

    best = candidates[0]
    status = classify(best.scores.total)

    if (
        status == LinkStatus.AUTO_LINKED
        and len(candidates) > 1
        and candidates[1].scores.total == best.scores.total
    ):
        return best, LinkStatus.PENDING, (
            f"ambiguous: {best.note_id} and {candidates[1].note_id} both scored {best.scores.total}"
        )

    return best, status, None


class BatchReconciler:
    """Links production batches to delivery notes.

    Args:
        batches: Batch / match result repository
        notes: Delivery note repository (only the link reference is written)
    """

    def __init__(self, batches: BatchRepository, notes: NoteRepository):
        self.batches = batches
        self.notes = notes

    def reconcile_batch(self, batch_id: str, force: bool = False) -> MatchResult:
        """Score a batch against its same-day candidates and record the decision.

        Args:
            batch_id: Batch to reconcile
            force: Re-score even if the batch is already auto/manually linked

        Returns:
            The new MatchResult, or the current one if the batch was settled
            and not forced.

        Raises:
            NotFound: The batch does not exist
        """
        with with_correlation(batch_id=batch_id, stage="reconcile"):
            batch = self.batches.get(batch_id)
            if batch is None:
                raise NotFound("production batch", batch_id)

            if batch.link_status in SETTLED_STATUSES and not force:
                logger.info(f"Batch already {batch.link_status.value}; not re-scored")
                current = self.batches.current_result(batch_id)
                if current is not None:
                    return current
                return MatchResult(
                    batch_id=batch_id,
                    note_id=batch.linked_note_id,
                    confidence=batch.link_confidence or 0,
                    status=batch.link_status,
                    reason="already linked",
                )

            notes = self.notes.list_candidates(
                batch.batch_datetime.date(),
                exclude_linked_to_other=batch_id,
            )
            candidates = rank_candidates(batch, notes)
            best, status, reason = decide(candidates)

            # A forced re-run may move the link to a different note
            if batch.linked_note_id and (status != LinkStatus.AUTO_LINKED or batch.linked_note_id != best.note_id):
                self.notes.detach_batch(batch.linked_note_id, batch_id)

            if status == LinkStatus.AUTO_LINKED and not self.notes.attach_batch(best.note_id, batch_id):
                # Another batch claimed the note after our candidate read
                status = LinkStatus.PENDING
                reason = f"{best.note_id} was linked to another batch during reconciliation"
                logger.warning(reason)

            result = self.batches.record_result(MatchResult(
                batch_id=batch_id,
                note_id=best.note_id if best else None,
                scores=best.scores if best else None,
                confidence=best.scores.total if best else 0,
                status=status,
                candidates=candidates[:MAX_CANDIDATES_KEPT],
                reason=reason,
                evaluated_at=datetime.utcnow(),
            ))

            linked_note_id = result.note_id if status != LinkStatus.NO_MATCH else None
            self.batches.update_link(batch_id, status, linked_note_id, result.confidence)

            logger.info(
                f"Batch {batch.batch_number} → {status.value}",
                extra_fields={
                    "note_id": result.note_id,
                    "confidence": result.confidence,
                    "candidates": len(candidates),
                },
            )
            return result

    def reconcile_unlinked(self, limit: int = 500) -> ReconciliationRunSummary:
        """Reconcile every batch listed by ``list_unlinked`` (new, no_match or stale pending)."""
        summary = ReconciliationRunSummary(run_id=f"run-{uuid.uuid4().hex[:12]}")

        with with_correlation(run_id=summary.run_id):
            pending_batches = self.batches.list_unlinked(limit=limit)
            logger.info(f"Reconciling {len(pending_batches)} unlinked batches")

            for batch in pending_batches:
                try:
                    result = self.reconcile_batch(batch.batch_id)
                except NotFound as e:
                    # Deleted between listing and scoring
                    summary.skipped += 1
                    summary.errors.append(str(e))
                    continue
                summary.count(result.status)

            logger.info(
                "Reconciliation run complete",
                extra_fields={
                    "processed": summary.processed,
                    "auto_linked": summary.auto_linked,
                    "pending": summary.pending,
                    "no_match": summary.no_match,
                },
            )
        return summary

    def link_manually(self, batch_id: str, note_id: str, linked_by: str) -> MatchResult:
        """Confirm or override a link by hand.

        Raises:
            NotFound: Batch or note does not exist
            InvalidTransition: The note is cancelled or linked to another batch
        """
        with with_correlation(batch_id=batch_id, delivery_note_id=note_id, stage="manual_link"):
            batch = self.batches.get(batch_id)
            if batch is None:
                raise NotFound("production batch", batch_id)
            note = self.notes.get(note_id)
            if note is None:
                raise NotFound("delivery note", note_id)

            if note.workflow_status == DeliveryStatus.CANCELLED:
                raise InvalidTransition(f"Delivery note {note_id} is cancelled")
            if note.linked_batch_id and note.linked_batch_id != batch_id:
                raise InvalidTransition(
                    f"Delivery note {note_id} is already linked to batch {note.linked_batch_id}"
                )

            if not self.notes.attach_batch(note_id, batch_id):
                latest = self.notes.get(note_id)
                raise InvalidTransition(
                    f"Delivery note {note_id} is already linked to batch {latest.linked_batch_id if latest else None}"
                )
            if batch.linked_note_id and batch.linked_note_id != note_id:
                self.notes.detach_batch(batch.linked_note_id, batch_id)

            scores = score_match(batch, note)
            result = self.batches.record_result(MatchResult(
                batch_id=batch_id,
                note_id=note_id,
                scores=scores,
                confidence=scores.total,
                status=LinkStatus.MANUAL_LINKED,
                reason=f"linked by {linked_by}",
                evaluated_at=datetime.utcnow(),
            ))

            self.batches.update_link(batch_id, LinkStatus.MANUAL_LINKED, note_id, scores.total)

            logger.info(f"Batch {batch.batch_number} manually linked", extra_fields={"linked_by": linked_by})
            return result


def summarize_scores(scores: Optional[MatchScores]) -> str:
    if scores is None:
        return "-"
    return (
        f"date={scores.date_score} client={scores.client_score} "
        f"volume={scores.volume_score} formula={scores.formula_score} total={scores.total}"
    )
