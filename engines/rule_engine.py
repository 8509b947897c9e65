"""Deterministic business rules for steel-fitting purchase requests.

These functions implement the contract-price, painting-route, pricing and
final-classification rules independently of any inference result.  They
are pure: the same inputs always produce the same outputs, which lets the
Phase 1 estimate and the Phase 2 final amount agree whenever the type code
is unchanged.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, Mapping, Optional, Tuple

from models.records import Classification, PRLineItem

PAINT_NONE_CODE = "N0"
INTERNAL_PAINT_PREFIX = "C"
UNASSIGNED_VENDOR = "unassigned"

# fabricator -> (paint vendor, vendor code)
PAINT_VENDOR_MAP: Dict[str, Tuple[str, str]] = {
    "Sechang M&E Co., Ltd.": ("Daelim SNP", "PV-DL01"),
    "KEM Co., Ltd.": ("Jinmyung F&P", "PV-JM02"),
    "Dongjin Tech Co., Ltd.": ("PS Industrial", "PV-PS03"),
    "Hanbit ENG": ("Sungwon Enterprise", "PV-SW04"),
    "Handeok": ("Daelim SNP", "PV-DL01"),
}

BASE_TYPE_CODE = "B"

# KRW per kg of fabricated fitting.
UNIT_PRICE_BY_TYPE: Dict[str, int] = {
    "B": 2800,
    "A": 6500,
    "S": 7800,
    "G": 3600,
    "I": 3300,
    "M": 8400,
    "N": 3900,
    "E": 8900,
}

WEIGHT_MIN = 50
WEIGHT_MAX = 500

TYPE_CODE_DESCRIPTIONS: Dict[str, str] = {
    "B": "basic merchant-ship fitting (SS400 angle + plate, plain pipe support)",
    "A": "SUS304L angle / plate",
    "S": "SUS316L angle / plate",
    "G": "bending / cover / box / coaming types",
    "I": "pipe piece, square tube or beam type",
    "M": "SUS316L pipe",
    "N": "check plate required",
    "E": "coaming in SUS316L (PQPC group only)",
}

_PRIMARY_STAINLESS = re.compile(r"\b(?:SUS|STS)\s*-?\s*316L?\b", re.IGNORECASE)
_ALTERNATE_STAINLESS = re.compile(r"\b(?:SUS|STS)\s*-?\s*304L?\b", re.IGNORECASE)
_CHECK_PLATE = re.compile(r"CHECK(?:ED)?[\s\-_]*PLATE", re.IGNORECASE)
_PIPE_SUPPORT = re.compile(r"PIPE\s+SUPPORT", re.IGNORECASE)
_PIPE = re.compile(r"\bPIPE\b", re.IGNORECASE)
_PIPE_TUBE_BEAM = re.compile(r"\b(?:PIPE|TUBE|BEAM)\b", re.IGNORECASE)
_BENDING = re.compile(r"BEND(?:ING)?|\bCOVER\b|\bBOX\b|COAMING", re.IGNORECASE)


def paint_pass_through(paint_code: Optional[str]) -> str:
    """Return ``"Y"`` when the item must be routed via an external painter."""

    code = (paint_code or "").strip()
    if not code or code.upper() == PAINT_NONE_CODE:
        return "N"
    if code.upper().startswith(INTERNAL_PAINT_PREFIX):
        return "N"
    return "Y"


def assign_paint_vendor(fabricator: Optional[str], pass_through: str) -> Tuple[str, str]:
    """Return ``(vendor_name, vendor_code)`` for an item's painting route."""

    if pass_through != "Y":
        return "", ""
    vendor = PAINT_VENDOR_MAP.get((fabricator or "").strip())
    if vendor is None:
        return UNASSIGNED_VENDOR, ""
    return vendor


def pseudo_weight(material_no: str) -> int:
    """Stand-in weight in kg derived from the material number's characters."""

    span = WEIGHT_MAX - WEIGHT_MIN + 1
    return WEIGHT_MIN + sum(ord(ch) for ch in material_no or "") % span


def unit_price(type_code: Optional[str]) -> int:
    code = (type_code or "").strip().upper()
    return UNIT_PRICE_BY_TYPE.get(code, UNIT_PRICE_BY_TYPE[BASE_TYPE_CODE])


def order_amount(material_no: str, type_code: Optional[str]) -> int:
    return int(round(pseudo_weight(material_no) * unit_price(type_code)))


def infer_type_code(description: str, grade: str = "", extra_text: str = "") -> str:
    """Keyword rule used as fallback and for drawing-based inference.

    Priority order, first match wins: check plate, stainless pipe,
    stainless, alternate stainless, pipe/tube/beam, bending/cover/box,
    then the basic type.
    """

    text = " ".join(part for part in (description, extra_text) if part)
    # A plain "PIPE SUPPORT" is the basic fitting, not a pipe piece.
    shape_text = _PIPE_SUPPORT.sub(" ", text)
    material_text = f"{grade} {text}"

    if _CHECK_PLATE.search(text):
        return "N"
    if _PRIMARY_STAINLESS.search(material_text):
        if _PIPE.search(shape_text):
            return "M"
        return "S"
    if _ALTERNATE_STAINLESS.search(material_text):
        return "A"
    if _PIPE_TUBE_BEAM.search(shape_text):
        return "I"
    if _BENDING.search(shape_text):
        return "G"
    return BASE_TYPE_CODE


def contract_price_exists(
    material_attribute: str,
    type_code: str,
    price_groups: Mapping[str, Iterable[str]],
) -> Tuple[str, str]:
    """Return ``(flag, reason)`` for the contract-price existence check."""

    group = (material_attribute or "").strip().upper()
    code = (type_code or "").strip().upper()
    if group not in price_groups:
        return "N", f"type group {group or '-'} has no contract price table"
    codes = {str(c).upper() for c in price_groups[group]}
    if code not in codes:
        return "N", f"type code {code or '-'} is not contracted for group {group}"
    return "Y", f"contract price exists for {group}/{code}"


def final_classification(contract_flag: str) -> str:
    if (contract_flag or "").strip().upper() == "Y":
        return Classification.QUANTITY_REVIEW
    return Classification.QUOTE


def evaluate_type_code(item: PRLineItem) -> Tuple[str, str, str, str]:
    """Rule-based adequacy check of the PR's existing type code.

    Returns ``(type_code, adequacy, recommended_code, reason)``.
    """

    expected = infer_type_code(item.description, item.material_grade)
    current = item.type_code or expected
    if current == expected:
        return current, "adequate", "", f"description and grade match type {expected}"
    return (
        current,
        "inadequate",
        expected,
        f"description and grade indicate type {expected}, PR carries {current}",
    )


__all__ = [
    "PAINT_NONE_CODE",
    "INTERNAL_PAINT_PREFIX",
    "UNASSIGNED_VENDOR",
    "PAINT_VENDOR_MAP",
    "UNIT_PRICE_BY_TYPE",
    "TYPE_CODE_DESCRIPTIONS",
    "assign_paint_vendor",
    "contract_price_exists",
    "evaluate_type_code",
    "final_classification",
    "infer_type_code",
    "order_amount",
    "paint_pass_through",
    "pseudo_weight",
    "unit_price",
]
