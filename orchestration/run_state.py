# PRAgent/orchestration/run_state.py

"""State owned by one pipeline orchestrator.

A :class:`RunState` holds the six stage statuses and every record produced
by the current run.  It lives only as long as the process; a new run or an
explicit reset replaces it wholesale.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.records import (
    Action,
    ClassificationRecord,
    PORecord,
    ReviewResponse,
    VerificationRecord,
)


class StageStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


STAGE_TITLES = (
    "Phase 1 classification",
    "Review target derivation",
    "Supplier review intake",
    "Phase 2 reconciliation",
    "PO generation",
    "Summary",
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StageState:
    index: int
    title: str
    status: str = StageStatus.PENDING
    message: str = ""
    data: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    elapsed_ms: Optional[int] = None
    _clock: Optional[float] = field(default=None, repr=False)

    @property
    def key(self) -> str:
        return f"stage-{self.index}"

    def start(self, message: str = "") -> None:
        self.status = StageStatus.PROCESSING
        self.message = message or f"{self.title} in progress"
        self.started_at = _utcnow()
        self._clock = time.monotonic()

    def _finish(self, status: str, message: str) -> None:
        self.status = status
        self.message = message
        self.finished_at = _utcnow()
        if self._clock is not None:
            self.elapsed_ms = int((time.monotonic() - self._clock) * 1000)

    def complete(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._finish(StageStatus.COMPLETED, message)
        self.data = data

    def fail(self, message: str) -> None:
        self._finish(StageStatus.ERROR, message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "index": self.index,
            "title": self.title,
            "status": self.status,
            "message": self.message,
            "data": self.data,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "elapsed_ms": self.elapsed_ms,
        }


def _fresh_stages() -> List[StageState]:
    return [StageState(index=i, title=title) for i, title in enumerate(STAGE_TITLES, start=1)]


@dataclass
class RunState:
    run_id: Optional[str] = None
    is_running: bool = False
    current_stage: int = 0
    stages: List[StageState] = field(default_factory=_fresh_stages)
    classifications: List[ClassificationRecord] = field(default_factory=list)
    review_targets: List[ClassificationRecord] = field(default_factory=list)
    reviews: List[ReviewResponse] = field(default_factory=list)
    verifications: List[VerificationRecord] = field(default_factory=list)
    purchase_orders: List[PORecord] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    def stage(self, index: int) -> StageState:
        return self.stages[index - 1]

    @property
    def latest_stage(self) -> Optional[StageState]:
        if self.current_stage <= 0:
            return None
        return self.stage(self.current_stage)

    def find_classification(self, material_no: str) -> Optional[ClassificationRecord]:
        for record in self.classifications:
            if record.material_no == material_no:
                return record
        return None

    def find_verification(self, material_no: str) -> Optional[VerificationRecord]:
        for record in self.verifications:
            if record.material_no == material_no:
                return record
        return None

    def po_for(self, material_no: str) -> Optional[PORecord]:
        for order in self.purchase_orders:
            if order.material_no == material_no:
                return order
        return None

    def pending_hitl(self) -> List[VerificationRecord]:
        return [r for r in self.verifications if r.recommended_action == Action.HITL]

    def to_dict(self) -> Dict[str, Any]:
        latest = self.latest_stage
        return {
            "run_id": self.run_id,
            "is_running": self.is_running,
            "current_stage": self.current_stage,
            "latest_stage": latest.to_dict() if latest else None,
            "stages": [stage.to_dict() for stage in self.stages],
            "classifications": [record.to_dict() for record in self.classifications],
            "review_targets": [record.material_no for record in self.review_targets],
            "verifications": [record.to_dict() for record in self.verifications],
            "purchase_orders": [order.to_dict() for order in self.purchase_orders],
            "summary": self.summary,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


__all__ = ["RunState", "StageState", "StageStatus", "STAGE_TITLES"]
