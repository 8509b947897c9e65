import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from agents.base_agent import AgentNick
from agents.classification_agent import ClassificationAgent
from agents.reconciliation_agent import ReconciliationAgent
from engines import rule_engine
from models.records import Action, PORecord, VerificationRecord
from orchestration.run_state import RunState, StageState
from services.po_number_generator import PONumberGenerator
from services.summary_service import build_summary

logger = logging.getLogger(__name__)

StageResult = Tuple[str, Optional[Dict[str, Any]]]


class AlreadyRunning(RuntimeError):
    """Raised when a run (or a HITL decision) would overlap another one."""


class NotFound(LookupError):
    """Raised when a HITL target or a detail lookup is absent, or not awaiting a decision."""


class InvalidDecision(ValueError):
    """Raised when a HITL decision is missing required input, such as a reject reason."""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineOrchestrator:
    """Six-stage classification and reconciliation run with HITL re-entry.

    One lock serialises runs, resets and HITL decisions: a run holds it for
    its whole duration, so a second start is rejected immediately and a
    decision waits at most ``hitl_lock_timeout`` seconds before it is
    rejected.  A separate short-lived lock guards snapshots of the state.
    """

    def __init__(
        self,
        agent_nick: AgentNick,
        *,
        classification_agent: Optional[ClassificationAgent] = None,
        reconciliation_agent: Optional[ReconciliationAgent] = None,
        po_generator_factory: Optional[Callable[[], PONumberGenerator]] = None,
    ):
        self.agent_nick = agent_nick
        self.settings = agent_nick.settings
        self.classification_agent = classification_agent or ClassificationAgent(agent_nick)
        self.reconciliation_agent = reconciliation_agent or ReconciliationAgent(agent_nick)
        self._po_generator_factory = po_generator_factory or PONumberGenerator
        self.po_generator = self._po_generator_factory()
        self.state = RunState()
        self._run_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._state_lock = threading.RLock()
        self._stages: List[Callable[[], StageResult]] = [
            self._stage_classify,
            self._stage_derive_targets,
            self._stage_intake_reviews,
            self._stage_reconcile,
            self._stage_issue_purchase_orders,
            self._stage_summarise,
        ]

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    def start_run(self, *, background: bool = False) -> Dict[str, Any]:
        """Start a new run, rejecting the call if one is already active.

        A missing credential raises :class:`ConfigurationError` before any
        stage is touched.  Stage failures propagate after the partial state
        has been recorded.
        """

        if not self._run_lock.acquire(blocking=False):
            raise AlreadyRunning("A pipeline run is already in progress")
        try:
            self.agent_nick.require_inference_client()
            self._prepare_run()
        except Exception:
            self._run_lock.release()
            raise

        if background:
            thread = threading.Thread(
                target=self._run_in_background, name="pipeline-run", daemon=True
            )
            self._worker = thread
            thread.start()
            return self.get_state()

        self._execute_and_release()
        return self.get_state()

    def reset(self) -> Dict[str, Any]:
        """Clear all results and start a fresh PO sequence."""

        if not self._run_lock.acquire(blocking=False):
            raise AlreadyRunning("Cannot reset while a pipeline run is in progress")
        try:
            with self._state_lock:
                self.state = RunState()
                self.po_generator = self._po_generator_factory()
            logger.info("Pipeline state reset")
            return self.get_state()
        finally:
            self._run_lock.release()

    def get_state(self) -> Dict[str, Any]:
        with self._state_lock:
            return self.state.to_dict()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a background run finishes; ``True`` when none is active."""

        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            return not worker.is_alive()
        return True

    def list_hitl(self) -> List[Dict[str, Any]]:
        with self._state_lock:
            return [record.to_dict() for record in self.state.pending_hitl()]

    def statistics(self) -> Dict[str, Any]:
        with self._state_lock:
            return build_summary(
                self.state.classifications,
                self.state.verifications,
                self.state.purchase_orders,
            )

    def pr_list(self) -> List[Dict[str, Any]]:
        """PR line items joined with their current Phase 1 record, if any."""

        with self._state_lock:
            by_material = {r.material_no: r for r in self.state.classifications}
            return [
                {
                    **item.to_dict(),
                    "classification": (
                        by_material[item.material_no].to_dict()
                        if item.material_no in by_material
                        else None
                    ),
                }
                for item in self.agent_nick.reference.pr_items
            ]

    def pr_detail(self, material_no: str) -> Dict[str, Any]:
        """One PR line item with its current Phase 1 record."""

        item = self.agent_nick.reference.item_for(material_no)
        if item is None:
            raise NotFound(f"No PR line item for material {material_no}")
        with self._state_lock:
            record = self.state.find_classification(material_no)
            return {**item.to_dict(), "classification": record.to_dict() if record else None}

    def review_list(self) -> List[Dict[str, Any]]:
        """Review responses joined with their current Phase 2 action, if any."""

        with self._state_lock:
            rows = []
            for review in self.agent_nick.reference.review_responses:
                record = self.state.find_verification(review.material_no)
                rows.append(
                    {
                        **review.to_dict(),
                        "recommended_action": record.recommended_action if record else None,
                        "hitl_subtype": record.hitl_subtype if record else None,
                    }
                )
            return rows

    def review_detail(self, material_no: str) -> Dict[str, Any]:
        """One review response with its Phase 2 record and purchase order, if any."""

        review = self.agent_nick.reference.review_for(material_no)
        if review is None:
            raise NotFound(f"No review response for material {material_no}")
        with self._state_lock:
            record = self.state.find_verification(material_no)
            order = self.state.po_for(material_no)
            return {
                **review.to_dict(),
                "verification": record.to_dict() if record else None,
                "purchase_order": order.to_dict() if order else None,
            }

    def approve(self, material_no: str, comment: Optional[str] = None) -> Dict[str, Any]:
        """Confirm a pending HITL record and issue its purchase order."""

        with self._decision_guard():
            with self._state_lock:
                record = self._pending_record(material_no)
                note = (comment or "").strip()
                record.recommended_action = Action.CONFIRMED
                if record.order_amount <= 0:
                    record.order_amount = rule_engine.order_amount(
                        record.material_no, record.effective_type_code
                    )
                record.rationale = (
                    f"{record.rationale} [HITL approved{': ' + note if note else ''}]"
                )
                record.decisions.append(
                    {"action": "approve", "comment": note, "decided_at": _utcnow()}
                )
                order = self.state.po_for(material_no) or self._issue_po(record, issued_via="hitl")
                summary = self._refresh_after_decision()
                logger.info("HITL approved %s (PO %s)", material_no, order.po_no)
                return {"record": record.to_dict(), "po": order.to_dict(), "summary": summary}

    def reject(self, material_no: str, reason: Optional[str]) -> Dict[str, Any]:
        """Cancel the review of a pending HITL record; no PO is issued."""

        text = (reason or "").strip()
        if not text:
            raise InvalidDecision("A reason is required to reject a review")
        with self._decision_guard():
            with self._state_lock:
                record = self._pending_record(material_no)
                record.recommended_action = Action.REVIEW_CANCELLED
                record.rationale = f"{record.rationale} [HITL rejected: {text}]"
                record.decisions.append(
                    {"action": "reject", "reason": text, "decided_at": _utcnow()}
                )
                summary = self._refresh_after_decision()
                logger.info("HITL rejected %s: %s", material_no, text)
                return {"record": record.to_dict(), "summary": summary}

    # ------------------------------------------------------------------
    # Run execution
    # ------------------------------------------------------------------
    def _prepare_run(self) -> None:
        with self._state_lock:
            self.state = RunState(
                run_id=uuid.uuid4().hex[:12],
                is_running=True,
                started_at=_utcnow(),
            )
            self.po_generator = self._po_generator_factory()
        logger.info("Starting pipeline run %s", self.state.run_id)

    def _run_in_background(self) -> None:
        try:
            self._execute_and_release()
        except Exception:
            logger.exception("Background pipeline run %s failed", self.state.run_id)

    def _execute_and_release(self) -> None:
        try:
            self._execute()
        finally:
            self._run_lock.release()

    def _execute(self) -> None:
        for index, step in enumerate(self._stages, start=1):
            with self._state_lock:
                stage = self.state.stage(index)
                self.state.current_stage = index
                stage.start()
            logger.info("Stage %d (%s) started", index, stage.title)
            try:
                message, data = step()
            except Exception as exc:
                self._fail_stage(stage, exc)
                raise
            with self._state_lock:
                stage.complete(message, data)
            logger.info("Stage %d completed: %s", index, message)

        with self._state_lock:
            self.state.is_running = False
            self.state.finished_at = _utcnow()
        logger.info("Pipeline run %s finished", self.state.run_id)

    def _fail_stage(self, stage: StageState, exc: Exception) -> None:
        message = f"{type(exc).__name__}: {exc}"
        with self._state_lock:
            stage.fail(message)
            self.state.error = message
            self.state.is_running = False
            self.state.finished_at = _utcnow()
        logger.exception("Stage %d (%s) failed", stage.index, stage.title)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _stage_classify(self) -> StageResult:
        records = self.classification_agent.run(self.agent_nick.reference.pr_items)
        with self._state_lock:
            self.state.classifications = records
        quantity = sum(1 for record in records if record.needs_quantity_review)
        data = {"analyzed": len(records), "quantity_review": quantity, "quote": len(records) - quantity}
        return f"Classified {len(records)} PR line items", data

    def _stage_derive_targets(self) -> StageResult:
        with self._state_lock:
            targets = [r for r in self.state.classifications if r.needs_quantity_review]
            self.state.review_targets = targets
        return (
            f"{len(targets)} items sent for supplier quantity review",
            {"targets": [record.material_no for record in targets]},
        )

    def _stage_intake_reviews(self) -> StageResult:
        received = self.agent_nick.reference.review_responses
        pairs = self.reconciliation_agent.select_reviews(self.state.review_targets, received)
        with self._state_lock:
            self.state.reviews = [review for review, _ in pairs]
        data = {
            "received": len(received),
            "selected": len(pairs),
            "filtered_out": len(received) - len(pairs),
        }
        return f"Accepted {len(pairs)} of {len(received)} review responses", data

    def _stage_reconcile(self) -> StageResult:
        targets = {record.material_no: record for record in self.state.review_targets}
        pairs = [(review, targets[review.material_no]) for review in self.state.reviews]
        records = self.reconciliation_agent.reconcile_all(pairs)
        with self._state_lock:
            self.state.verifications = records
        confirmed = sum(1 for r in records if r.recommended_action == Action.CONFIRMED)
        hitl = sum(1 for r in records if r.recommended_action == Action.HITL)
        return (
            f"Verified {len(records)} items: {confirmed} confirmed, {hitl} awaiting decision",
            {"verified": len(records), "confirmed": confirmed, "hitl": hitl},
        )

    def _stage_issue_purchase_orders(self) -> StageResult:
        issued = []
        with self._state_lock:
            for record in self.state.verifications:
                if record.recommended_action != Action.CONFIRMED:
                    continue
                if self.state.po_for(record.material_no) is not None:
                    continue
                issued.append(self._issue_po(record, issued_via="batch"))
            data = self._po_stage_data()
        return f"Issued {len(issued)} purchase orders", data

    def _stage_summarise(self) -> StageResult:
        with self._state_lock:
            summary = self.statistics()
            self.state.summary = summary
        return f"Automation rate {summary['automation_rate']:.1f}%", summary

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _issue_po(self, record: VerificationRecord, *, issued_via: str) -> PORecord:
        order = PORecord(
            po_no=self.po_generator.generate(),
            rep_pr_no=record.rep_pr_no,
            material_no=record.material_no,
            fabricator=record.fabricator,
            type_code=record.effective_type_code,
            order_amount=record.order_amount,
            order_date=self.po_generator.order_date.isoformat(),
            disposition=record.disposition,
            verification_outcome=record.verification_outcome,
            description=record.description,
            hitl_subtype=record.hitl_subtype,
            issued_via=issued_via,
        )
        self.state.purchase_orders.append(order)
        logger.info("Issued %s for %s (%s)", order.po_no, order.material_no, issued_via)
        return order

    def _po_stage_data(self) -> Dict[str, Any]:
        orders = self.state.purchase_orders
        return {
            "po_count": len(orders),
            "total_po_value": sum(order.order_amount for order in orders),
            "po_numbers": [order.po_no for order in orders],
        }

    def _pending_record(self, material_no: str) -> VerificationRecord:
        record = self.state.find_verification(material_no)
        if record is None:
            raise NotFound(f"No verification record for material {material_no}")
        if record.recommended_action != Action.HITL:
            raise NotFound(
                f"Material {material_no} is not awaiting a decision "
                f"(current action: {record.recommended_action})"
            )
        return record

    def _refresh_after_decision(self) -> Dict[str, Any]:
        summary = self.statistics()
        self.state.summary = summary
        self.state.stage(5).data = self._po_stage_data()
        self.state.stage(6).data = summary
        return summary

    @contextmanager
    def _decision_guard(self):
        timeout = float(getattr(self.settings, "hitl_lock_timeout", 5.0))
        if not self._run_lock.acquire(timeout=timeout):
            raise AlreadyRunning("A pipeline run or another decision is in progress")
        try:
            yield
        finally:
            self._run_lock.release()


__all__ = ["AlreadyRunning", "InvalidDecision", "NotFound", "PipelineOrchestrator"]
