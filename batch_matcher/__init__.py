"""Batch Matcher Module.

Reconciles machine-reported production batches with delivery notes.

Usage:
    from batch_matcher import BatchReconciler, score_match, classify

    scores = score_match(batch, note)
    status = classify(scores.total)
"""

from batch_matcher.classifier import AUTO_LINK_THRESHOLD, REVIEW_THRESHOLD, classify
from batch_matcher.importer import ImportReport, RowError, import_batches_csv
from batch_matcher.normalize import contains_match, fuzzy_client_match, normalize_text, word_set_match
from batch_matcher.reconciler import BatchReconciler, ReconciliationRunSummary
from batch_matcher.scorer import score_match

__all__ = [
    "AUTO_LINK_THRESHOLD",
    "REVIEW_THRESHOLD",
    "classify",
    "ImportReport",
    "RowError",
    "import_batches_csv",
    "contains_match",
    "fuzzy_client_match",
    "normalize_text",
    "word_set_match",
    "BatchReconciler",
    "ReconciliationRunSummary",
    "score_match",
]
