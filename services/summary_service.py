"""Run-level statistics recomputed from the current result set."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Sequence

from models.records import (
    Action,
    Classification,
    ClassificationRecord,
    HitlSubtype,
    PORecord,
    VerificationRecord,
)

logger = logging.getLogger(__name__)


def automation_rate(confirmed: int, cancelled: int, verified: int) -> float:
    """Share of verified items closed without a pending decision, in percent."""

    if verified <= 0:
        return 0.0
    return round((confirmed + cancelled) / verified * 100, 1)


def build_summary(
    classifications: Sequence[ClassificationRecord],
    verifications: Sequence[VerificationRecord],
    purchase_orders: Sequence[PORecord],
) -> Dict[str, Any]:
    """Aggregate the three record collections.

    Always derived from scratch so that HITL decisions are reflected
    without any incremental bookkeeping.
    """

    classification_counts = Counter(record.final_classification for record in classifications)
    action_counts = Counter(record.recommended_action for record in verifications)
    pending_subtypes = Counter(
        record.hitl_subtype
        for record in verifications
        if record.recommended_action == Action.HITL
    )

    verified = len(verifications)
    confirmed = action_counts.get(Action.CONFIRMED, 0)
    cancelled = action_counts.get(Action.REVIEW_CANCELLED, 0)

    summary = {
        "phase1": {
            "analyzed": len(classifications),
            "quantity_review": classification_counts.get(Classification.QUANTITY_REVIEW, 0),
            "quote": classification_counts.get(Classification.QUOTE, 0),
            "type_code_inadequate": sum(
                1 for record in classifications if record.type_code_adequacy == "inadequate"
            ),
            "pass_through": sum(
                1 for record in classifications if record.paint_pass_through == "Y"
            ),
        },
        "phase2": {
            "verified": verified,
            "confirmed": confirmed,
            "hitl": action_counts.get(Action.HITL, 0),
            "review_cancelled": cancelled,
            "hitl_by_subtype": {
                subtype: pending_subtypes.get(subtype, 0) for subtype in HitlSubtype.ALL
            },
        },
        "automation_rate": automation_rate(confirmed, cancelled, verified),
        "po_count": len(purchase_orders),
        "total_po_value": sum(order.order_amount for order in purchase_orders),
    }
    logger.debug("Summary recomputed: %s", summary)
    return summary


__all__ = ["automation_rate", "build_summary"]
