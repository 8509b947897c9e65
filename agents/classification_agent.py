"""Phase 1: classify every PR line item with one batched inference call.

The inference result supplies the contract-price judgement and the
type-code review; the painting route, paint vendor, order amount and final
classification are always settled by :mod:`engines.rule_engine`.
"""

import json
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from agents.base_agent import BaseAgent
from agents.schemas import ClassificationPayload
from engines import rule_engine
from models.records import ClassificationRecord, PRLineItem
from utils.response_recovery import recover_json_array

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a procurement analyst for shipyard steel fittings (pipe supports, coamings, platforms).
For every purchase-request line you receive, decide:
1. contractPriceExists: "Y" when the material attribute group has a contract price table that contains the line's type code, else "N".
2. typeCode review: is the existing type code adequate for the description and material grade?
   Type codes: B basic SS400 angle/plate, A SUS304L angle/plate, S SUS316L angle/plate, G bending/cover/box/coaming,
   I pipe piece/square tube/beam, M SUS316L pipe, N check plate required, E SUS316L coaming (PQPC only).
3. paintPassThrough: "Y" when an external painting code is present.

Answer with ONLY a JSON array, one object per input line, in input order, no prose and no code fence.
Each object must contain: materialNo, contractPriceExists, contractPriceReason, typeCode,
typeCodeAdequacy ("adequate" or "inadequate"), recommendedTypeCode (empty when adequate), typeCodeReason,
paintPassThrough."""


class ClassificationAgent(BaseAgent):
    """Phase 1 classifier over the full PR collection."""

    def run(self, items: Sequence[PRLineItem]) -> List[ClassificationRecord]:
        if not items:
            logger.info("No PR line items to classify")
            return []

        prompt = self._build_prompt(items)
        started = time.monotonic()
        raw = self.call_inference(
            SYSTEM_PROMPT,
            prompt,
            max_tokens=int(getattr(self.settings, "classification_max_tokens", 8192)),
        )
        recovered = recover_json_array(raw)
        per_item_ms = int((time.monotonic() - started) * 1000 / len(items))

        joined = self._join(items, recovered)
        if len(joined) < len(items):
            logger.warning(
                "Inference returned %d of %d classification records; %d items left unclassified",
                len(joined),
                len(items),
                len(items) - len(joined),
            )

        records = [
            self._build_record(item, payload, per_item_ms) for item, payload in joined
        ]
        logger.info("Phase 1 classified %d PR line items", len(records))
        return records

    # ------------------------------------------------------------------
    # Prompt and join
    # ------------------------------------------------------------------
    def _build_prompt(self, items: Sequence[PRLineItem]) -> str:
        lines = [
            {
                "index": index,
                "materialNo": item.material_no,
                "repPrNo": item.rep_pr_no,
                "description": item.description,
                "materialAttribute": item.material_attribute,
                "materialGrade": item.material_grade,
                "typeCode": item.type_code,
                "fabricator": item.fabricator,
                "paintCode": item.paint_code,
            }
            for index, item in enumerate(items)
        ]
        price_table = {
            group: codes for group, codes in self.reference.price_codes_by_group.items()
        }
        return (
            "Contract price table (type group -> contracted type codes):\n"
            f"{json.dumps(price_table, ensure_ascii=False)}\n\n"
            f"Purchase-request lines ({len(lines)}):\n"
            f"{json.dumps(lines, ensure_ascii=False)}"
        )

    def _join(
        self, items: Sequence[PRLineItem], recovered: List[object]
    ) -> List[Tuple[PRLineItem, ClassificationPayload]]:
        """Pair recovered records with items, by echoed material number or position."""

        known = {item.material_no for item in items}
        by_key: Dict[str, ClassificationPayload] = {}
        by_position: Dict[int, ClassificationPayload] = {}

        for index, entry in enumerate(recovered):
            payload = self._parse_payload(index, entry)
            if payload is None:
                continue
            if payload.material_no in known and payload.material_no not in by_key:
                by_key[payload.material_no] = payload
            elif index < len(items):
                by_position[index] = payload

        joined: List[Tuple[PRLineItem, ClassificationPayload]] = []
        for index, item in enumerate(items):
            payload = by_key.get(item.material_no) or by_position.get(index)
            if payload is not None:
                joined.append((item, payload))
        return joined

    @staticmethod
    def _parse_payload(index: int, entry: object) -> Optional[ClassificationPayload]:
        if not isinstance(entry, dict):
            logger.warning("Classification record %d is not an object: %r", index, entry)
            return None
        try:
            return ClassificationPayload.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Classification record %d failed validation: %s", index, exc)
            return ClassificationPayload()

    # ------------------------------------------------------------------
    # Deterministic overrides
    # ------------------------------------------------------------------
    def _build_record(
        self, item: PRLineItem, payload: ClassificationPayload, processing_ms: int
    ) -> ClassificationRecord:
        source = "inference"

        rule_flag, rule_reason = rule_engine.contract_price_exists(
            item.material_attribute, item.type_code, self.reference.price_codes_by_group
        )
        if payload.contract_price_exists is None:
            flag, reason = rule_flag, rule_reason
            source = "inference+rules"
        else:
            flag = payload.contract_price_exists
            reason = payload.contract_price_reason or rule_reason
            if flag != rule_flag:
                logger.info(
                    "Contract price flag for %s: inference=%s, price table=%s",
                    item.material_no,
                    flag,
                    rule_flag,
                )

        type_code = item.type_code or payload.type_code or rule_engine.infer_type_code(
            item.description, item.material_grade
        )
        adequacy = payload.type_code_adequacy
        recommended = payload.recommended_type_code or ""
        type_reason = payload.type_code_reason or ""
        if adequacy is None:
            _, adequacy, recommended, type_reason = rule_engine.evaluate_type_code(item)
            source = "inference+rules"
        elif adequacy == "adequate":
            recommended = ""
        elif not recommended:
            recommended = rule_engine.infer_type_code(item.description, item.material_grade)

        pass_through = rule_engine.paint_pass_through(item.paint_code)
        if payload.paint_pass_through and payload.paint_pass_through != pass_through:
            logger.debug(
                "Discarding inferred pass-through %s for %s (paint code %r)",
                payload.paint_pass_through,
                item.material_no,
                item.paint_code,
            )
        vendor_name, vendor_code = rule_engine.assign_paint_vendor(item.fabricator, pass_through)

        return ClassificationRecord(
            material_no=item.material_no,
            rep_pr_no=item.rep_pr_no,
            contract_price_exists=flag,
            contract_price_reason=reason,
            type_code=type_code,
            type_code_adequacy=adequacy,
            recommended_type_code=recommended,
            type_code_reason=type_reason,
            paint_pass_through=pass_through,
            paint_vendor=vendor_name,
            paint_vendor_code=vendor_code,
            final_classification=rule_engine.final_classification(flag),
            order_amount=rule_engine.order_amount(item.material_no, type_code),
            description=item.description,
            material_attribute=item.material_attribute,
            material_grade=item.material_grade,
            fabricator=item.fabricator,
            paint_code=item.paint_code,
            source=source,
            processing_ms=processing_ms,
        )


__all__ = ["ClassificationAgent", "SYSTEM_PROMPT"]
