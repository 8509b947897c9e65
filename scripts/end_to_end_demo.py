"""End-to-end demonstration harness for the PR classification pipeline."""
from __future__ import annotations

import logging
import os
import sys
from pprint import pprint

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from agents.base_agent import AgentNick
from config.settings import ConfigurationError
from orchestration.orchestrator import PipelineOrchestrator
from services.inference_client import InferenceCallError
from utils.response_recovery import MalformedInferenceOutput

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def run_demo() -> None:
    """Run all six stages against the bundled reference data and print the outcome."""

    orchestrator = PipelineOrchestrator(AgentNick())
    logging.info("Running the six-stage pipeline over the bundled reference data")
    try:
        orchestrator.start_run()
    except (ConfigurationError, InferenceCallError, MalformedInferenceOutput) as exc:
        logging.error("Pipeline run stopped: %s", exc)
    state = orchestrator.get_state()

    _print_section("Stages")
    for stage in state["stages"]:
        elapsed = f"{stage['elapsed_ms']} ms" if stage["elapsed_ms"] is not None else "-"
        print(f"{stage['key']:<8} {stage['status']:<11} {elapsed:>9}  {stage['message']}")

    _print_section("Awaiting HITL decision")
    for record in orchestrator.list_hitl():
        print(f"{record['material_no']}  {record['hitl_subtype']:<22} {record['rationale']}")

    _print_section("Purchase Orders")
    for order in state["purchase_orders"]:
        print(f"{order['po_no']}  {order['material_no']}  {order['type_code']}  {order['order_amount']:>12,}")

    _print_section("Summary")
    pprint(state["summary"])

    print("\nDemo complete. Pending items can be decided through the HITL endpoints.")


if __name__ == "__main__":
    run_demo()
