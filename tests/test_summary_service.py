import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.records import (
    Action,
    Classification,
    ClassificationRecord,
    HitlSubtype,
    Outcome,
    PORecord,
    VerificationRecord,
)
from services.summary_service import automation_rate, build_summary


def _classification(material_no, final, adequacy="adequate", pass_through="N"):
    return ClassificationRecord(
        material_no=material_no,
        rep_pr_no=1,
        contract_price_exists="Y" if final == Classification.QUANTITY_REVIEW else "N",
        contract_price_reason="",
        type_code="B",
        type_code_adequacy=adequacy,
        recommended_type_code="",
        type_code_reason="",
        paint_pass_through=pass_through,
        paint_vendor="",
        paint_vendor_code="",
        final_classification=final,
        order_amount=100,
    )


def _verification(material_no, action, subtype=None):
    return VerificationRecord(
        material_no=material_no,
        rep_pr_no=1,
        disposition="unchanged",
        verification_outcome=Outcome.CONFORMING,
        recommended_action=action,
        rationale="",
        current_type_code="B",
        effective_type_code="B",
        order_amount=100,
        hitl_subtype=subtype,
    )


def _po(material_no, amount):
    return PORecord(
        po_no=f"PO-{material_no}",
        rep_pr_no=1,
        material_no=material_no,
        fabricator="KEM Co., Ltd.",
        type_code="B",
        order_amount=amount,
        order_date="2025-03-07",
        disposition="unchanged",
        verification_outcome=Outcome.CONFORMING,
    )


def test_automation_rate_counts_confirmed_and_cancelled():
    assert automation_rate(3, 1, 8) == 50.0
    assert automation_rate(1, 0, 3) == 33.3
    assert automation_rate(0, 0, 0) == 0.0


def test_build_summary_counts_every_collection():
    classifications = [
        _classification("A", Classification.QUANTITY_REVIEW, pass_through="Y"),
        _classification("B", Classification.QUANTITY_REVIEW, adequacy="inadequate"),
        _classification("C", Classification.QUOTE),
    ]
    verifications = [
        _verification("A", Action.CONFIRMED),
        _verification("B", Action.HITL, HitlSubtype.NO_DRAWING),
    ]
    orders = [_po("A", 250_000)]

    summary = build_summary(classifications, verifications, orders)

    assert summary["phase1"] == {
        "analyzed": 3,
        "quantity_review": 2,
        "quote": 1,
        "type_code_inadequate": 1,
        "pass_through": 1,
    }
    assert summary["phase2"]["verified"] == 2
    assert summary["phase2"]["confirmed"] == 1
    assert summary["phase2"]["hitl"] == 1
    assert summary["phase2"]["hitl_by_subtype"][HitlSubtype.NO_DRAWING] == 1
    assert summary["phase2"]["hitl_by_subtype"][HitlSubtype.NEGOTIATION] == 0
    assert summary["automation_rate"] == 50.0
    assert summary["po_count"] == 1
    assert summary["total_po_value"] == 250_000


def test_build_summary_is_idempotent():
    verifications = [_verification("A", Action.REVIEW_CANCELLED, HitlSubtype.NEGOTIATION)]
    first = build_summary([], verifications, [])
    second = build_summary([], verifications, [])
    assert first == second
    assert first["automation_rate"] == 100.0
    assert first["phase2"]["hitl_by_subtype"][HitlSubtype.NEGOTIATION] == 0
