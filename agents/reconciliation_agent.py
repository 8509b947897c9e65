"""Phase 2: reconcile supplier review responses against Phase 1 results."""

import logging
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from agents.base_agent import AgentNick, BaseAgent
from agents.negotiation_pricer import NegotiationPriceAnalyzer
from engines import rule_engine
from models.records import (
    Action,
    ClassificationRecord,
    Disposition,
    HitlSubtype,
    Outcome,
    ReviewResponse,
    VerificationRecord,
)

logger = logging.getLogger(__name__)

# Demo fixture: this material always lands in drawing re-check.
FORCED_VISION_MISMATCH_MATERIAL = "2589TPQPD303A512"


class ReconciliationAgent(BaseAgent):
    """Dispatch each review response to its disposition handler."""

    def __init__(
        self,
        agent_nick: AgentNick,
        negotiation_analyzer: Optional[NegotiationPriceAnalyzer] = None,
    ):
        super().__init__(agent_nick)
        self.negotiation_analyzer = negotiation_analyzer or NegotiationPriceAnalyzer(agent_nick)
        self._handlers = {
            Disposition.UNCHANGED: self._reconcile_unchanged,
            Disposition.TYPE_CHANGED: self._reconcile_type_changed,
            Disposition.NEGOTIATION_REQUIRED: self._reconcile_negotiation,
            Disposition.FABRICATION_IMPOSSIBLE: self._reconcile_fabrication_impossible,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def select_reviews(
        self,
        targets: Sequence[ClassificationRecord],
        reviews: Optional[Iterable[ReviewResponse]] = None,
    ) -> List[Tuple[ReviewResponse, ClassificationRecord]]:
        """Keep only responses for quantity-review targets, one per material."""

        by_material: Dict[str, ClassificationRecord] = {
            record.material_no: record for record in targets if record.needs_quantity_review
        }
        if reviews is None:
            reviews = self.reference.review_responses

        selected: List[Tuple[ReviewResponse, ClassificationRecord]] = []
        seen = set()
        skipped = 0
        for review in reviews:
            record = by_material.get(review.material_no)
            if record is None:
                skipped += 1
                continue
            if review.material_no in seen:
                logger.warning("Ignoring duplicate review response for %s", review.material_no)
                continue
            seen.add(review.material_no)
            selected.append((review, record))

        if skipped:
            logger.info("Filtered out %d review responses outside the quantity-review set", skipped)
        return selected

    def run(
        self,
        targets: Sequence[ClassificationRecord],
        reviews: Optional[Iterable[ReviewResponse]] = None,
    ) -> List[VerificationRecord]:
        pairs = self.select_reviews(targets, reviews)
        return self.reconcile_all(pairs)

    def reconcile_all(
        self, pairs: Sequence[Tuple[ReviewResponse, ClassificationRecord]]
    ) -> List[VerificationRecord]:
        records = [self.reconcile(review, classification) for review, classification in pairs]
        logger.info("Phase 2 verified %d review responses", len(records))
        return records

    def reconcile(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> VerificationRecord:
        started = time.monotonic()
        handler = self._handlers.get(review.disposition)
        if handler is None:
            raise ValueError(f"unknown review disposition: {review.disposition!r}")
        record = handler(review, classification)
        record.processing_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "%s: %s -> %s (%s)",
            record.material_no,
            review.disposition,
            record.recommended_action,
            record.hitl_subtype or "-",
        )
        return record

    # ------------------------------------------------------------------
    # Disposition handlers
    # ------------------------------------------------------------------
    def _record(
        self,
        review: ReviewResponse,
        classification: ClassificationRecord,
        *,
        outcome: str,
        action: str,
        rationale: str,
        effective_type_code: str,
        order_amount: int,
        hitl_subtype: Optional[str] = None,
        inferred_type_code: Optional[str] = None,
        price_analysis: Optional[dict] = None,
    ) -> VerificationRecord:
        return VerificationRecord(
            material_no=review.material_no,
            rep_pr_no=classification.rep_pr_no,
            disposition=review.disposition,
            verification_outcome=outcome,
            recommended_action=action,
            rationale=rationale,
            current_type_code=classification.type_code,
            effective_type_code=effective_type_code,
            order_amount=order_amount,
            hitl_subtype=hitl_subtype,
            requested_type_code=review.requested_type_code,
            requested_price=review.requested_price,
            inferred_type_code=inferred_type_code,
            price_analysis=price_analysis,
            description=classification.description,
            fabricator=classification.fabricator,
        )

    def _reconcile_unchanged(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> VerificationRecord:
        effective = review.requested_type_code or classification.type_code
        return self._record(
            review,
            classification,
            outcome=Outcome.CONFORMING,
            action=Action.CONFIRMED,
            rationale=f"Supplier accepted the PR as issued; confirmed at type {effective}.",
            effective_type_code=effective,
            order_amount=rule_engine.order_amount(review.material_no, effective),
        )

    def _reconcile_fabrication_impossible(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> VerificationRecord:
        rationale = "Supplier reports the item cannot be fabricated; buyer decision required."
        if review.comment:
            rationale = f"{rationale} Supplier comment: {review.comment}"
        return self._record(
            review,
            classification,
            outcome=Outcome.NEEDS_REVIEW,
            action=Action.HITL,
            rationale=rationale,
            effective_type_code=classification.type_code,
            order_amount=0,
            hitl_subtype=HitlSubtype.FABRICATION_IMPOSSIBLE,
        )

    def _reconcile_negotiation(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> VerificationRecord:
        analysis = self.negotiation_analyzer.analyze(review, classification)
        requested = (
            f"{review.requested_price:,.0f}" if review.requested_price is not None else "n/a"
        )
        rationale = (
            f"Supplier requests unit price {requested}; recommended "
            f"{analysis['recommended_price']:,.0f} ({analysis['strategy']})."
        )
        return self._record(
            review,
            classification,
            outcome=Outcome.NEEDS_REVIEW,
            action=Action.HITL,
            rationale=rationale,
            effective_type_code=classification.type_code,
            order_amount=rule_engine.order_amount(review.material_no, classification.type_code),
            hitl_subtype=HitlSubtype.NEGOTIATION,
            price_analysis=analysis,
        )

    def _reconcile_type_changed(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> VerificationRecord:
        current = classification.type_code
        requested = review.requested_type_code or current
        amount = rule_engine.order_amount(review.material_no, requested)

        if not review.drawing_available:
            if requested == current:
                return self._record(
                    review,
                    classification,
                    outcome=Outcome.CONFORMING,
                    action=Action.CONFIRMED,
                    rationale=(
                        f"No drawing; requested type {requested} equals current type, "
                        "treated as a sub-type change."
                    ),
                    effective_type_code=requested,
                    order_amount=amount,
                )
            return self._record(
                review,
                classification,
                outcome=Outcome.NEEDS_REVIEW,
                action=Action.HITL,
                rationale=(
                    f"No drawing to verify the change from {current} to {requested}; "
                    "buyer confirmation required."
                ),
                effective_type_code=requested,
                order_amount=amount,
                hitl_subtype=HitlSubtype.NO_DRAWING,
            )

        inferred, basis = self._infer_from_drawing(review, classification)
        forced = review.material_no == FORCED_VISION_MISMATCH_MATERIAL
        if forced:
            logger.info("Material %s is routed to drawing re-check (demo scenario)", review.material_no)

        if inferred == requested and not forced:
            return self._record(
                review,
                classification,
                outcome=Outcome.CONFORMING,
                action=Action.CONFIRMED,
                rationale=f"Drawing check confirms type {requested}. {basis}",
                effective_type_code=requested,
                order_amount=amount,
                inferred_type_code=inferred,
            )
        return self._record(
            review,
            classification,
            outcome=Outcome.NONCONFORMING,
            action=Action.HITL,
            rationale=(
                f"Drawing check indicates type {inferred}, supplier requested {requested}; "
                f"re-check required. {basis}"
            ),
            effective_type_code=requested,
            order_amount=amount,
            hitl_subtype=HitlSubtype.VISION_MISMATCH,
            inferred_type_code=inferred,
        )

    def _infer_from_drawing(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> Tuple[str, str]:
        """Return ``(type_code, basis)`` from the drawing record or the keyword rule."""

        drawing = self.reference.find_drawing(review.drawing_no)
        if drawing is not None and drawing.correct_type:
            criteria = "; ".join(drawing.criteria)
            basis = f"Drawing {drawing.dwg_no}: {criteria}" if criteria else f"Drawing {drawing.dwg_no}."
            return drawing.correct_type, basis

        inferred = rule_engine.infer_type_code(
            classification.description, classification.material_grade
        )
        return inferred, "Keyword rule applied to description and grade."


__all__ = ["FORCED_VISION_MISMATCH_MATERIAL", "ReconciliationAgent"]
