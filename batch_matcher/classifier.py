"""Link classification thresholds."""

from models.production import LinkStatus


AUTO_LINK_THRESHOLD = 90
REVIEW_THRESHOLD = 70


def classify(total_confidence: int) -> LinkStatus:
    """Map a single pair's confidence to a link decision.

    >=90 auto_linked, 70-89 pending (human review), <70 no_match.
    Unaware of competing candidates; the reconciler picks the best one first.
    """
    if total_confidence >= AUTO_LINK_THRESHOLD:
        return LinkStatus.AUTO_LINKED
    if total_confidence >= REVIEW_THRESHOLD:
        return LinkStatus.PENDING
    return LinkStatus.NO_MATCH
