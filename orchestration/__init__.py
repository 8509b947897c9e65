"""Orchestration of the classification and reconciliation pipeline.

The ``__getattr__`` shim resolves the orchestrator lazily so importing
``orchestration.run_state`` does not pull in the agents and their clients.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "AlreadyRunning",
    "InvalidDecision",
    "NotFound",
    "PipelineOrchestrator",
    "RunState",
    "StageState",
    "StageStatus",
]


def __getattr__(name: str) -> Any:  # pragma: no cover - import shim
    if name in {"AlreadyRunning", "InvalidDecision", "NotFound", "PipelineOrchestrator"}:
        module = import_module("orchestration.orchestrator")
        return getattr(module, name)

    if name in {"RunState", "StageState", "StageStatus"}:
        module = import_module("orchestration.run_state")
        return getattr(module, name)

    raise AttributeError(f"module 'orchestration' has no attribute {name!r}")
