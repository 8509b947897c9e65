"""Record types shared by the classification and reconciliation pipeline.

Reference rows (PR line items, review responses, price entries and drawing
records) are read-only for the lifetime of a run and therefore frozen.  The
Phase 1 and PO records are written once; :class:`VerificationRecord` is the
only record a human-in-the-loop decision may change after the stage that
created it has completed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


class Disposition:
    """Supplier review outcome categories."""

    UNCHANGED = "unchanged"
    TYPE_CHANGED = "type-changed"
    NEGOTIATION_REQUIRED = "negotiation-required"
    FABRICATION_IMPOSSIBLE = "fabrication-impossible"

    ALL = (UNCHANGED, TYPE_CHANGED, NEGOTIATION_REQUIRED, FABRICATION_IMPOSSIBLE)


class Classification:
    QUANTITY_REVIEW = "quantity-review-required"
    QUOTE = "quote-required"


class Outcome:
    CONFORMING = "conforming"
    NONCONFORMING = "nonconforming"
    NEEDS_REVIEW = "needs-review"


class Action:
    CONFIRMED = "confirmed"
    HITL = "hitl"
    REVIEW_CANCELLED = "review-cancelled"


class HitlSubtype:
    NEGOTIATION = "negotiation"
    VISION_MISMATCH = "vision-mismatch"
    NO_DRAWING = "no-drawing"
    FABRICATION_IMPOSSIBLE = "fabrication-impossible"

    ALL = (NEGOTIATION, VISION_MISMATCH, NO_DRAWING, FABRICATION_IMPOSSIBLE)


@dataclass(frozen=True)
class PRLineItem:
    rep_pr_no: int
    material_no: str
    description: str
    material_attribute: str
    material_grade: str
    type_code: str
    fabricator: str
    paint_code: str = ""
    drawing_no: str = ""

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "PRLineItem":
        return cls(
            rep_pr_no=int(row.get("rep_pr_no") or 0),
            material_no=str(row.get("material_no") or "").strip(),
            description=str(row.get("description") or ""),
            material_attribute=str(row.get("material_attribute") or "").strip(),
            material_grade=str(row.get("material_grade") or ""),
            type_code=str(row.get("type_code") or "").strip().upper(),
            fabricator=str(row.get("fabricator") or "").strip(),
            paint_code=str(row.get("paint_code") or ""),
            drawing_no=str(row.get("drawing_no") or "").strip(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReviewResponse:
    rep_pr_no: int
    material_no: str
    disposition: str
    requested_type_code: str = ""
    requested_price: Optional[float] = None
    drawing_no: str = ""
    drawing_available: bool = False
    comment: str = ""

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "ReviewResponse":
        disposition = str(row.get("disposition") or "").strip().lower()
        if disposition not in Disposition.ALL:
            raise ValueError(f"unknown review disposition: {row.get('disposition')!r}")
        price = row.get("requested_price")
        return cls(
            rep_pr_no=int(row.get("rep_pr_no") or 0),
            material_no=str(row.get("material_no") or "").strip(),
            disposition=disposition,
            requested_type_code=str(row.get("requested_type_code") or "").strip().upper(),
            requested_price=float(price) if price not in (None, "") else None,
            drawing_no=str(row.get("drawing_no") or "").strip(),
            drawing_available=bool(row.get("drawing_available")),
            comment=str(row.get("comment") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PriceEntry:
    type_group: str
    type_code: str
    unit_price: float
    item: str = ""
    supplier: str = ""
    effective_date: str = ""

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "PriceEntry":
        return cls(
            type_group=str(row.get("type_group") or "").strip(),
            type_code=str(row.get("type_code") or "").strip().upper(),
            unit_price=float(row.get("unit_price") or 0.0),
            item=str(row.get("item") or ""),
            supplier=str(row.get("supplier") or ""),
            effective_date=str(row.get("effective_date") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DrawingRecord:
    dwg_no: str
    material_no: str
    correct_type: str
    criteria: tuple = ()
    page: str = ""

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "DrawingRecord":
        return cls(
            dwg_no=str(row.get("dwg_no") or "").strip(),
            material_no=str(row.get("material_no") or "").strip(),
            correct_type=str(row.get("correct_type") or "").strip().upper(),
            criteria=tuple(str(c) for c in row.get("criteria") or ()),
            page=str(row.get("page") or ""),
        )


@dataclass
class ClassificationRecord:
    """Phase 1 result for one PR line item."""

    material_no: str
    rep_pr_no: int
    contract_price_exists: str
    contract_price_reason: str
    type_code: str
    type_code_adequacy: str
    recommended_type_code: str
    type_code_reason: str
    paint_pass_through: str
    paint_vendor: str
    paint_vendor_code: str
    final_classification: str
    order_amount: int
    description: str = ""
    material_attribute: str = ""
    material_grade: str = ""
    fabricator: str = ""
    paint_code: str = ""
    source: str = "inference"
    processing_ms: int = 0

    @property
    def needs_quantity_review(self) -> bool:
        return self.final_classification == Classification.QUANTITY_REVIEW

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VerificationRecord:
    """Phase 2 result for one reviewed line item.

    ``recommended_action`` moves from ``hitl`` to ``confirmed`` or
    ``review-cancelled`` when a reviewer decides; nothing else mutates it.
    """

    material_no: str
    rep_pr_no: int
    disposition: str
    verification_outcome: str
    recommended_action: str
    rationale: str
    current_type_code: str
    effective_type_code: str
    order_amount: int
    hitl_subtype: Optional[str] = None
    requested_type_code: str = ""
    requested_price: Optional[float] = None
    inferred_type_code: Optional[str] = None
    price_analysis: Optional[Dict[str, Any]] = None
    description: str = ""
    fabricator: str = ""
    decisions: List[Dict[str, Any]] = field(default_factory=list)
    processing_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PORecord:
    po_no: str
    rep_pr_no: int
    material_no: str
    fabricator: str
    type_code: str
    order_amount: int
    order_date: str
    disposition: str
    verification_outcome: str
    status: str = "issued"
    description: str = ""
    hitl_subtype: Optional[str] = None
    issued_via: str = "batch"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
