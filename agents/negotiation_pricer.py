"""Price recommendation for negotiation-required review responses."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from agents.base_agent import BaseAgent
from agents.schemas import NegotiationPayload
from config.settings import ConfigurationError
from engines import rule_engine
from models.records import ClassificationRecord, PriceEntry, ReviewResponse
from services.inference_client import InferenceCallError
from utils.response_recovery import MalformedInferenceOutput, recover_json_object

logger = logging.getLogger(__name__)

FALLBACK_STRATEGY = "moderate negotiation"
FALLBACK_DISCOUNT = 0.9
FALLBACK_RATIONALE = (
    "Recommended price follows the average of recent prices for the same type code.",
    "Supplier request is above the reference level; negotiate toward the average.",
    "Automated price analysis unavailable; figures derived from the local price table.",
)

SYSTEM_PROMPT = """You are a steel-fitting purchasing negotiator.
Given a supplier's requested unit price, the current contract unit price and recent reference prices
for the same type code, recommend a negotiation target.
Answer with ONLY a JSON object with keys: recommendedPrice (number, KRW/kg),
strategy (one of "accept", "light negotiation", "moderate negotiation", "firm negotiation"),
rationale (array of short strings), historicalSummary (one sentence)."""


@dataclass
class NegotiationContext:
    material_no: str
    type_code: str
    requested_price: Optional[float]
    current_unit_price: float
    reference_prices: List[PriceEntry] = field(default_factory=list)
    description: str = ""
    fabricator: str = ""

    @property
    def reference_average(self) -> float:
        return reference_average(self.reference_prices, self.requested_price)


def reference_average(entries: Sequence[PriceEntry], requested_price: Optional[float]) -> float:
    """Mean of ``entries``; the requested price itself when there are none."""

    if not entries:
        return float(requested_price or 0.0)
    return sum(entry.unit_price for entry in entries) / len(entries)


def _price_gap_pct(requested: Optional[float], average: float) -> Optional[float]:
    if not requested or average <= 0:
        return None
    return round((requested - average) / average * 100, 1)


def plan_fallback(ctx: NegotiationContext, error: Optional[str] = None) -> Dict[str, Any]:
    """Deterministic recommendation used whenever the inference path fails."""

    average = ctx.reference_average
    if average > 0:
        recommended = average
    else:
        recommended = FALLBACK_DISCOUNT * float(ctx.requested_price or 0.0)
    summary = (
        f"{len(ctx.reference_prices)} reference prices for type {ctx.type_code}, "
        f"average {average:,.0f}"
    )
    result = {
        "recommended_price": round(recommended, 2),
        "strategy": FALLBACK_STRATEGY,
        "rationale": list(FALLBACK_RATIONALE),
        "historical_summary": summary,
        "reference_average": round(average, 2),
        "reference_count": len(ctx.reference_prices),
        "requested_price": ctx.requested_price,
        "current_unit_price": ctx.current_unit_price,
        "price_gap_pct": _price_gap_pct(ctx.requested_price, average),
        "source": "fallback",
    }
    if error:
        result["error"] = error
    return result


class NegotiationPriceAnalyzer(BaseAgent):
    """One inference call per negotiation item, never raising to the caller."""

    def build_context(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> NegotiationContext:
        type_code = classification.type_code
        limit = int(getattr(self.settings, "negotiation_reference_limit", 10))
        return NegotiationContext(
            material_no=review.material_no,
            type_code=type_code,
            requested_price=review.requested_price,
            current_unit_price=float(rule_engine.unit_price(type_code)),
            reference_prices=self.reference.reference_prices(type_code, limit=min(limit, 10)),
            description=classification.description,
            fabricator=classification.fabricator,
        )

    def analyze(
        self, review: ReviewResponse, classification: ClassificationRecord
    ) -> Dict[str, Any]:
        ctx = self.build_context(review, classification)
        try:
            raw = self.call_inference(
                SYSTEM_PROMPT,
                self._build_prompt(ctx),
                max_tokens=int(getattr(self.settings, "negotiation_max_tokens", 1024)),
            )
            payload = NegotiationPayload.model_validate(recover_json_object(raw))
        except (
            ConfigurationError,
            InferenceCallError,
            MalformedInferenceOutput,
            ValidationError,
        ) as exc:
            logger.warning(
                "Negotiation analysis for %s fell back to local pricing: %s", ctx.material_no, exc
            )
            return plan_fallback(ctx, error=str(exc))
        except Exception as exc:  # pragma: no cover - unexpected client failure
            logger.exception("Negotiation analysis for %s failed unexpectedly", ctx.material_no)
            return plan_fallback(ctx, error=str(exc))

        return self._merge(ctx, payload)

    def _build_prompt(self, ctx: NegotiationContext) -> str:
        references = [
            {
                "typeGroup": entry.type_group,
                "item": entry.item,
                "unitPrice": entry.unit_price,
                "supplier": entry.supplier,
                "effectiveDate": entry.effective_date,
            }
            for entry in ctx.reference_prices
        ]
        body = {
            "materialNo": ctx.material_no,
            "description": ctx.description,
            "fabricator": ctx.fabricator,
            "typeCode": ctx.type_code,
            "requestedPrice": ctx.requested_price,
            "currentUnitPrice": ctx.current_unit_price,
            "referenceAverage": round(ctx.reference_average, 2),
            "referencePrices": references,
        }
        return json.dumps(body, ensure_ascii=False)

    @staticmethod
    def _merge(ctx: NegotiationContext, payload: NegotiationPayload) -> Dict[str, Any]:
        """Inference recommendation with gaps filled from the local average."""

        fallback = plan_fallback(ctx)
        return {
            **fallback,
            "recommended_price": payload.recommended_price or fallback["recommended_price"],
            "strategy": payload.strategy or fallback["strategy"],
            "rationale": payload.rationale or fallback["rationale"],
            "historical_summary": payload.historical_summary or fallback["historical_summary"],
            "source": "inference",
        }


__all__ = [
    "NegotiationContext",
    "NegotiationPriceAnalyzer",
    "plan_fallback",
    "reference_average",
]
