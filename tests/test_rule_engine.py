import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from engines import rule_engine
from models.records import Classification, PRLineItem


PRICE_GROUPS = {
    "PQPD": ["B", "A", "G", "I", "S", "M", "N"],
    "PQPC": ["E", "G"],
}


@pytest.mark.parametrize("paint_code", ["", "   ", "N0", " n0 ", "C1", "CX", "c9"])
def test_pass_through_is_n_for_empty_none_and_internal_codes(paint_code):
    assert rule_engine.paint_pass_through(paint_code) == "N"


@pytest.mark.parametrize("paint_code", ["T0", "T1", "T2", "A5", "N1"])
def test_pass_through_is_y_for_external_codes(paint_code):
    assert rule_engine.paint_pass_through(paint_code) == "Y"


def test_pass_through_handles_none():
    assert rule_engine.paint_pass_through(None) == "N"


def test_vendor_assignment_uses_fabricator_table():
    assert rule_engine.assign_paint_vendor("KEM Co., Ltd.", "Y") == ("Jinmyung F&P", "PV-JM02")
    assert rule_engine.assign_paint_vendor("  Handeok ", "Y") == ("Daelim SNP", "PV-DL01")


def test_vendor_assignment_unmapped_fabricator_is_unassigned():
    assert rule_engine.assign_paint_vendor("Nowhere Steel", "Y") == (rule_engine.UNASSIGNED_VENDOR, "")


def test_vendor_assignment_skipped_without_pass_through():
    assert rule_engine.assign_paint_vendor("KEM Co., Ltd.", "N") == ("", "")


def test_pseudo_weight_within_range_and_deterministic():
    for material_no in ("2590TPQPD701C572", "2589TPQPD303A512", "X", ""):
        weight = rule_engine.pseudo_weight(material_no)
        assert rule_engine.WEIGHT_MIN <= weight <= rule_engine.WEIGHT_MAX
        assert weight == rule_engine.pseudo_weight(material_no)


def test_pseudo_weight_sums_character_codes():
    expected = 50 + sum(ord(ch) for ch in "AB12") % 451
    assert rule_engine.pseudo_weight("AB12") == expected


def test_order_amount_is_weight_times_unit_price():
    material_no = "2589TPQPD131C212"
    amount = rule_engine.order_amount(material_no, "G")
    assert amount == rule_engine.pseudo_weight(material_no) * rule_engine.UNIT_PRICE_BY_TYPE["G"]
    assert isinstance(amount, int)


def test_order_amount_repeatable_across_calls():
    first = [rule_engine.order_amount("2591TPQPM118B330", code) for code in "BASGIMNE"]
    rule_engine.order_amount("something-else", "B")
    second = [rule_engine.order_amount("2591TPQPM118B330", code) for code in "BASGIMNE"]
    assert first == second


def test_unknown_type_code_falls_back_to_base_price():
    assert rule_engine.unit_price("Q") == rule_engine.UNIT_PRICE_BY_TYPE["B"]
    assert rule_engine.unit_price(None) == rule_engine.UNIT_PRICE_BY_TYPE["B"]
    assert rule_engine.order_amount("M-1", "Q") == rule_engine.order_amount("M-1", "B")


@pytest.mark.parametrize(
    "description, grade, expected",
    [
        ("CHECK PLATE PLATFORM SUPPORT", "SS400", "N"),
        ("CHECKED-PLATE STEP SUS316L PIPE", "SUS316L", "N"),
        ("PIPE GUIDE 50A", "SUS316L", "M"),
        ("PIPE SUPPORT ANGLE 65X65X6", "SUS316L", "S"),
        ("PIPE SUPPORT ANGLE 50X50X6", "STS 304", "A"),
        ("PIPE PIECE 100A WITH PAD PLATE", "SS400", "I"),
        ("PIPE SUPPORT FOR UNIT SQ. TUBE FRAME", "SS400", "I"),
        ("PIPE SUPPORT COVER BOX (BENDING TYPE)", "SS400", "G"),
        ("PIPE COAMING", "SS400", "I"),
        ("DECK COAMING", "SS400", "G"),
        ("PIPE SUPPORT EQ. ANGLE 75X75X9", "SS400", "B"),
        ("", "", "B"),
    ],
)
def test_infer_type_code_priority(description, grade, expected):
    assert rule_engine.infer_type_code(description, grade) == expected


def test_infer_type_code_reads_extra_text():
    assert rule_engine.infer_type_code("PIPE SUPPORT", "SS400", "drawing notes: CHECK PLATE") == "N"


def test_contract_price_exists_for_contracted_group_and_code():
    flag, reason = rule_engine.contract_price_exists("pqpd", "b", PRICE_GROUPS)
    assert flag == "Y"
    assert "PQPD/B" in reason


def test_contract_price_missing_for_uncontracted_code():
    flag, reason = rule_engine.contract_price_exists("PQPC", "M", PRICE_GROUPS)
    assert flag == "N"
    assert "PQPC" in reason


def test_contract_price_missing_for_unknown_group():
    flag, _ = rule_engine.contract_price_exists("PQPX", "B", PRICE_GROUPS)
    assert flag == "N"


def test_final_classification_follows_contract_flag():
    assert rule_engine.final_classification("Y") == Classification.QUANTITY_REVIEW
    assert rule_engine.final_classification(" y ") == Classification.QUANTITY_REVIEW
    assert rule_engine.final_classification("N") == Classification.QUOTE
    assert rule_engine.final_classification("") == Classification.QUOTE


def _item(description, grade, type_code):
    return PRLineItem(
        rep_pr_no=1,
        material_no="M-1",
        description=description,
        material_attribute="PQPD",
        material_grade=grade,
        type_code=type_code,
        fabricator="KEM Co., Ltd.",
    )


def test_evaluate_type_code_adequate():
    code, adequacy, recommended, _ = rule_engine.evaluate_type_code(
        _item("CHECK PLATE PLATFORM SUPPORT", "SS400", "N")
    )
    assert (code, adequacy, recommended) == ("N", "adequate", "")


def test_evaluate_type_code_inadequate_recommends_rule_code():
    code, adequacy, recommended, reason = rule_engine.evaluate_type_code(
        _item("PIPE SUPPORT COVER BOX", "SS400", "B")
    )
    assert (code, adequacy, recommended) == ("B", "inadequate", "G")
    assert "G" in reason
