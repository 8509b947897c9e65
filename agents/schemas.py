"""Shapes expected from the inference collaborator.

The models are deliberately lenient: unknown keys are ignored, blank or
out-of-vocabulary values collapse to ``None`` so the deterministic rules can
take over, and both snake_case and camelCase keys are accepted.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from engines.rule_engine import UNIT_PRICE_BY_TYPE

TYPE_CODES = tuple(UNIT_PRICE_BY_TYPE)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ClassificationPayload(BaseModel):
    """One Phase 1 record as returned by the batched classification call."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    material_no: Optional[str] = Field(None, alias="materialNo")
    contract_price_exists: Optional[str] = Field(None, alias="contractPriceExists")
    contract_price_reason: Optional[str] = Field(None, alias="contractPriceReason")
    type_code: Optional[str] = Field(None, alias="typeCode")
    type_code_adequacy: Optional[str] = Field(None, alias="typeCodeAdequacy")
    recommended_type_code: Optional[str] = Field(None, alias="recommendedTypeCode")
    type_code_reason: Optional[str] = Field(None, alias="typeCodeReason")
    # Accepted for completeness only; pass-through is always recomputed.
    paint_pass_through: Optional[str] = Field(None, alias="paintPassThrough")

    @field_validator(
        "material_no", "contract_price_reason", "type_code_reason", mode="before"
    )
    @classmethod
    def _strip_text(cls, value: Any) -> Optional[str]:
        return _clean_text(value)

    @field_validator("contract_price_exists", "paint_pass_through", mode="before")
    @classmethod
    def _yes_no(cls, value: Any) -> Optional[str]:
        if isinstance(value, bool):
            return "Y" if value else "N"
        text = (_clean_text(value) or "").upper()
        if text in {"Y", "YES"}:
            return "Y"
        if text in {"N", "NO"}:
            return "N"
        return None

    @field_validator("type_code", "recommended_type_code", mode="before")
    @classmethod
    def _known_type_code(cls, value: Any) -> Optional[str]:
        text = (_clean_text(value) or "").upper()
        return text if text in TYPE_CODES else None

    @field_validator("type_code_adequacy", mode="before")
    @classmethod
    def _adequacy(cls, value: Any) -> Optional[str]:
        text = (_clean_text(value) or "").lower()
        if text in {"adequate", "appropriate", "ok", "y"}:
            return "adequate"
        if text in {"inadequate", "inappropriate", "n"}:
            return "inadequate"
        return None


class NegotiationPayload(BaseModel):
    """Structured price recommendation for one negotiation item."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    recommended_price: Optional[float] = Field(None, alias="recommendedPrice")
    strategy: Optional[str] = None
    rationale: List[str] = Field(default_factory=list)
    historical_summary: Optional[str] = Field(None, alias="historicalSummary")

    @field_validator("recommended_price", mode="before")
    @classmethod
    def _positive_price(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            value = value.replace(",", "").strip()
        try:
            price = float(value)
        except (TypeError, ValueError):
            return None
        return price if price > 0 else None

    @field_validator("strategy", "historical_summary", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Optional[str]:
        return _clean_text(value)

    @field_validator("rationale", mode="before")
    @classmethod
    def _rationale_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [text for text in (_clean_text(item) for item in value) if text]


__all__ = ["ClassificationPayload", "NegotiationPayload", "TYPE_CODES"]
