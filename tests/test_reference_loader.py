import json
import os
import sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.records import Disposition
from utils.reference_loader import (
    ReferenceData,
    clear_reference_cache,
    drawing_lookup_keys,
    load_reference_dataset,
)

BUNDLED_DIR = os.path.abspath(
    os.path.join(os.path.dirname(__file__), "..", "resources", "reference_data")
)


def _write(path, name, payload):
    (path / f"{name}.json").write_text(json.dumps(payload), encoding="utf-8")


def test_missing_dataset_is_empty(tmp_path):
    clear_reference_cache()
    assert load_reference_dataset("pr_items", str(tmp_path)) == {}


def test_non_object_dataset_is_empty(tmp_path):
    clear_reference_cache()
    _write(tmp_path, "pr_items", [1, 2, 3])
    assert load_reference_dataset("pr_items", str(tmp_path)) == {}


def test_dataset_is_cached_until_cleared(tmp_path):
    clear_reference_cache()
    _write(tmp_path, "price_table", {"groups": {}})
    first = load_reference_dataset("price_table", str(tmp_path))
    _write(tmp_path, "price_table", {"groups": {"PQPD": {}}})
    assert load_reference_dataset("price_table", str(tmp_path)) is first
    clear_reference_cache()
    assert "PQPD" in load_reference_dataset("price_table", str(tmp_path))["groups"]


def test_invalid_review_rows_are_skipped(tmp_path):
    clear_reference_cache()
    _write(
        tmp_path,
        "review_responses",
        {
            "records": [
                {"rep_pr_no": 1, "material_no": "A", "disposition": "unchanged"},
                {"rep_pr_no": 2, "material_no": "B", "disposition": "maybe-later"},
            ]
        },
    )
    reference = ReferenceData.load(str(tmp_path))
    assert [review.material_no for review in reference.review_responses] == ["A"]


def test_drawing_lookup_keys_strip_project_prefix():
    assert drawing_lookup_keys("2589DN512P137") == ["2589DN512P137", "DN512P137"]
    assert drawing_lookup_keys("") == []


def test_bundled_reference_data_loads():
    clear_reference_cache()
    reference = ReferenceData.load(BUNDLED_DIR)

    assert len(reference.pr_items) == 12
    assert {review.disposition for review in reference.review_responses} == set(Disposition.ALL)
    assert reference.price_codes_by_group["PQPC"] == ["E", "G"]
    assert "PQPD" in reference.price_code_list

    drawing = reference.find_drawing("2590DN572P137")
    assert drawing is not None
    assert drawing.correct_type == "G"
    assert reference.find_drawing("DN512P137").material_no == "2589TPQPD303A512"
    assert reference.find_drawing("2591DN999P001") is None


def test_reference_prices_newest_first_and_limited():
    clear_reference_cache()
    reference = ReferenceData.load(BUNDLED_DIR)
    prices = reference.reference_prices("N", limit=2)
    assert len(prices) == 2
    assert prices[0].effective_date >= prices[1].effective_date
    assert all(entry.type_code == "N" for entry in prices)
    assert reference.reference_prices("Z") == []


def test_item_and_review_lookup_by_material():
    clear_reference_cache()
    reference = ReferenceData.load(BUNDLED_DIR)

    item = reference.item_for("2589TPQPD131C212")
    assert item.drawing_no == "2589DN212P137"
    review = reference.review_for("2589TPQPD131C212")
    assert review.disposition == Disposition.UNCHANGED
    assert reference.item_for("UNKNOWN-1") is None
    assert reference.review_for("UNKNOWN-1") is None
