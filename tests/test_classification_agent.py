import json
import os
import sys
from types import SimpleNamespace

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from agents.base_agent import AgentNick
from agents.classification_agent import ClassificationAgent
from engines import rule_engine
from models.records import Classification, PRLineItem
from services.inference_client import InferenceCallError
from utils.reference_loader import ReferenceData
from utils.response_recovery import MalformedInferenceOutput

ALL_CODES = [{"code": code} for code in "BAGISMN"]

ITEMS = [
    PRLineItem(
        rep_pr_no=4500103,
        material_no="2589TPQPD131C212",
        description="PIPE SUPPORT EQ. ANGLE 75X75X9",
        material_attribute="PQPD",
        material_grade="SS400",
        type_code="B",
        fabricator="KEM Co., Ltd.",
        paint_code="T0",
    ),
    PRLineItem(
        rep_pr_no=4500104,
        material_no="2590TPQPD304A501",
        description="CHECK PLATE PLATFORM SUPPORT",
        material_attribute="PQPD",
        material_grade="SS400",
        type_code="N",
        fabricator="Dongjin Tech Co., Ltd.",
        paint_code="C1",
    ),
    PRLineItem(
        rep_pr_no=4500111,
        material_no="2591TPQPC330E221",
        description="PIPE GUIDE 50A",
        material_attribute="PQPC",
        material_grade="SUS316L",
        type_code="M",
        fabricator="Hanbit ENG",
        paint_code="N0",
    ),
]


class ScriptedClient:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def complete(self, system_prompt, user_prompt, *, max_tokens=1024):
        self.calls.append({"system": system_prompt, "user": user_prompt, "max_tokens": max_tokens})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _reference(items=ITEMS):
    return ReferenceData(
        pr_items=list(items),
        price_groups={
            "PQPD": {"name": "PIPE SUPPORT HULL AREA", "codes": ALL_CODES},
            "PQPC": {"name": "PIPE COAMING", "codes": [{"code": "E"}, {"code": "G"}]},
        },
    )


def _settings():
    return SimpleNamespace(classification_max_tokens=4096, require_api_key=lambda: "test-key")


def _agent(response):
    client = ScriptedClient(response)
    nick = AgentNick(_settings(), inference_client=client, reference=_reference())
    return ClassificationAgent(nick), client


def _expected_record(item, price_groups, **overrides):
    flag, reason = rule_engine.contract_price_exists(
        item.material_attribute, item.type_code, price_groups
    )
    record = {
        "materialNo": item.material_no,
        "contractPriceExists": flag,
        "contractPriceReason": reason,
        "typeCode": rule_engine.infer_type_code(item.description, item.material_grade),
        "typeCodeAdequacy": "adequate",
        "recommendedTypeCode": "",
        "typeCodeReason": "matches description",
        "paintPassThrough": rule_engine.paint_pass_through(item.paint_code),
    }
    record.update(overrides)
    return record


def _deterministic_response(items=ITEMS, **overrides):
    groups = _reference().price_codes_by_group
    return json.dumps([_expected_record(item, groups, **overrides) for item in items])


def test_single_batched_call_for_all_items():
    agent, client = _agent(_deterministic_response())
    records = agent.run(ITEMS)

    assert len(client.calls) == 1
    assert client.calls[0]["max_tokens"] == 4096
    for item in ITEMS:
        assert item.material_no in client.calls[0]["user"]
    assert [r.material_no for r in records] == [i.material_no for i in ITEMS]


def test_scenario_contract_check_plate_and_stainless_pipe():
    agent, _ = _agent(_deterministic_response())
    first, check_plate, stainless_pipe = agent.run(ITEMS)

    assert first.final_classification == Classification.QUANTITY_REVIEW
    assert check_plate.type_code == "N"
    assert check_plate.final_classification == Classification.QUANTITY_REVIEW
    assert stainless_pipe.type_code == "M"
    assert stainless_pipe.contract_price_exists == "N"
    assert stainless_pipe.final_classification == Classification.QUOTE


def test_pass_through_is_recomputed_from_paint_code():
    response = _deterministic_response()
    flipped = json.loads(response)
    for record in flipped:
        record["paintPassThrough"] = "N" if record["paintPassThrough"] == "Y" else "Y"
    agent, _ = _agent(json.dumps(flipped))
    records = agent.run(ITEMS)

    assert [r.paint_pass_through for r in records] == ["Y", "N", "N"]
    assert (records[0].paint_vendor, records[0].paint_vendor_code) == ("Jinmyung F&P", "PV-JM02")
    assert records[1].paint_vendor == ""


def test_order_amount_matches_rule_engine():
    agent, _ = _agent(_deterministic_response())
    for record in agent.run(ITEMS):
        assert record.order_amount == rule_engine.order_amount(record.material_no, record.type_code)


def test_final_classification_derived_from_flag_not_inference_text():
    response = json.loads(_deterministic_response())
    response[0]["contractPriceExists"] = "N"
    agent, _ = _agent(json.dumps(response))
    record = agent.run(ITEMS)[0]
    assert record.contract_price_exists == "N"
    assert record.final_classification == Classification.QUOTE


def test_unclear_contract_flag_uses_price_table():
    response = json.loads(_deterministic_response())
    response[0]["contractPriceExists"] = "maybe"
    response[2]["contractPriceExists"] = None
    agent, _ = _agent(json.dumps(response))
    records = agent.run(ITEMS)
    assert records[0].contract_price_exists == "Y"
    assert records[0].source == "inference+rules"
    assert records[2].contract_price_exists == "N"


def test_missing_adequacy_falls_back_to_rule():
    response = json.loads(_deterministic_response())
    for record in response:
        record.pop("typeCodeAdequacy")
    agent, _ = _agent(json.dumps(response))
    records = agent.run(ITEMS)
    assert [r.type_code_adequacy for r in records] == ["adequate", "adequate", "adequate"]


def test_inadequate_without_recommendation_uses_rule_code():
    item = PRLineItem(
        rep_pr_no=1,
        material_no="2590TPQPD701C572",
        description="PIPE SUPPORT COVER BOX (BENDING TYPE)",
        material_attribute="PQPD",
        material_grade="SS400",
        type_code="B",
        fabricator="Sechang M&E Co., Ltd.",
        paint_code="T0",
    )
    response = _deterministic_response(
        [item], typeCode="B", typeCodeAdequacy="inadequate", recommendedTypeCode=""
    )
    agent, _ = _agent(response)
    (record,) = agent.run([item])
    assert record.type_code == "B"
    assert record.type_code_adequacy == "inadequate"
    assert record.recommended_type_code == "G"


def test_echoed_material_numbers_join_by_key():
    response = json.loads(_deterministic_response())
    response[0]["contractPriceReason"] = "first"
    response[2]["contractPriceReason"] = "third"
    agent, _ = _agent(json.dumps(list(reversed(response))))
    records = agent.run(ITEMS)
    assert records[0].contract_price_reason == "first"
    assert records[2].contract_price_reason == "third"


def test_positional_join_without_echo():
    response = json.loads(_deterministic_response())
    for record in response:
        record.pop("materialNo")
    response[1]["contractPriceReason"] = "second"
    agent, _ = _agent(json.dumps(response))
    records = agent.run(ITEMS)
    assert records[1].material_no == ITEMS[1].material_no
    assert records[1].contract_price_reason == "second"


def test_truncated_response_leaves_trailing_items_unclassified():
    full = _deterministic_response()
    cut = full.index(ITEMS[2].material_no)
    agent, _ = _agent(full[:cut])
    records = agent.run(ITEMS)
    assert [r.material_no for r in records] == [ITEMS[0].material_no, ITEMS[1].material_no]


def test_inference_failure_is_fatal():
    agent, _ = _agent(InferenceCallError("API Error: 500 - boom", status_code=500))
    with pytest.raises(InferenceCallError):
        agent.run(ITEMS)


def test_unparseable_response_is_fatal():
    agent, _ = _agent("I could not classify these lines.")
    with pytest.raises(MalformedInferenceOutput):
        agent.run(ITEMS)


def test_no_items_skips_inference():
    agent, client = _agent("[]")
    assert agent.run([]) == []
    assert client.calls == []


def test_records_wrapped_in_object_classify_every_item():
    wrapped = json.dumps({"records": json.loads(_deterministic_response())})
    agent, _ = _agent(wrapped)
    records = agent.run(ITEMS)
    assert [r.material_no for r in records] == [i.material_no for i in ITEMS]
    assert all(r.source == "inference" for r in records)
