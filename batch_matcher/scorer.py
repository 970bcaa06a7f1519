"""
Match Scorer

Scores one production batch against one delivery note on four independent
factors. Ceilings sum to 100:

    date/time  25   |batch time - note time| in minutes
    client     35   exact (accent/case-insensitive) or fuzzy
    volume     25   relative difference to the batch volume
    formula    15   case-insensitive equality or containment
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from batch_matcher.normalize import exact_key, fuzzy_client_match
from lifecycle.costing import to_decimal
from models.delivery import DeliveryNote
from models.production import MatchScores, ProductionBatch


DATE_TIERS = ((30, 25), (60, 20), (120, 15))  # (max minutes, score)
DATE_NO_TIME_SCORE = 10

CLIENT_EXACT_SCORE = 35
CLIENT_FUZZY_SCORE = 25

VOLUME_TIERS = ((Decimal("0.02"), 25), (Decimal("0.05"), 20), (Decimal("0.10"), 15))

FORMULA_SCORE = 15


def score_date(batch: ProductionBatch, note: DeliveryNote) -> int:
    """Time proximity on the batch's calendar date.

    A note with no departure or planned time gets a flat same-day credit.
    """
    note_time = note.recorded_time
    if note_time is None:
        return DATE_NO_TIME_SCORE

    batch_dt = batch.batch_datetime.replace(tzinfo=None)
    note_dt = datetime.combine(batch_dt.date(), note_time.replace(tzinfo=None))
    minutes = abs((batch_dt - note_dt).total_seconds()) / 60

    for max_minutes, score in DATE_TIERS:
        if minutes <= max_minutes:
            return score
    return 0


def score_client(batch_client: Optional[str], note_client: Optional[str]) -> int:
    key_batch = exact_key(batch_client)
    key_note = exact_key(note_client)
    if not key_batch or not key_note:
        return 0
    if key_batch == key_note:
        return CLIENT_EXACT_SCORE
    if fuzzy_client_match(batch_client, note_client):
        return CLIENT_FUZZY_SCORE
    return 0


def score_volume(batch_volume, note_volume) -> int:
    """Relative volume difference, measured against the batch volume."""
    if batch_volume is None or note_volume is None:
        return 0
    batch_v = to_decimal(batch_volume)
    note_v = to_decimal(note_volume)
    if batch_v <= 0 or note_v <= 0:
        return 0

    pct_diff = abs(note_v - batch_v) / batch_v
    for max_diff, score in VOLUME_TIERS:
        if pct_diff <= max_diff:
            return score
    return 0


def score_formula(batch_formula: Optional[str], note_formula: Optional[str]) -> int:
    a = (batch_formula or "").strip().lower()
    b = (note_formula or "").strip().lower()
    if not a or not b:
        return 0
    if a == b or a in b or b in a:
        return FORMULA_SCORE
    return 0


def score_match(batch: ProductionBatch, note: DeliveryNote) -> MatchScores:
    """Score one (batch, note) pair.

    Args:
        batch: Machine-reported production batch
        note: Candidate delivery note

    Returns:
        MatchScores; ``total`` is the plain sum of the four sub-scores.
    """
    return MatchScores(
        date_score=score_date(batch, note),
        client_score=score_client(batch.client_name, note.client_name),
        volume_score=score_volume(batch.total_volume_m3, note.volume_m3),
        formula_score=score_formula(batch.formula, note.formula_id),
    )
