import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.routers.run import error_response, get_orchestrator
from orchestration.orchestrator import (
    AlreadyRunning,
    InvalidDecision,
    NotFound,
    PipelineOrchestrator,
)

router = APIRouter(prefix="/api/hitl", tags=["HITL"])

logger = logging.getLogger(__name__)


class ApproveRequest(BaseModel):
    comment: Optional[str] = None


class RejectRequest(BaseModel):
    # Blank reasons are refused by the orchestrator.
    reason: Optional[str] = Field(None, description="Why the review is cancelled")


@router.get("")
def pending_decisions(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    records = orchestrator.list_hitl()
    return {"total": len(records), "data": records}


@router.post("/{material_no}/approve")
def approve(
    material_no: str,
    req: Optional[ApproveRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    try:
        result = orchestrator.approve(material_no, comment=req.comment if req else None)
    except (NotFound, AlreadyRunning) as exc:
        logger.warning("HITL approve for %s rejected: %s", material_no, exc)
        return error_response(exc, orchestrator)
    return {"success": True, **result}


@router.post("/{material_no}/reject")
def reject(
    material_no: str,
    req: Optional[RejectRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    try:
        result = orchestrator.reject(material_no, req.reason if req else None)
    except (NotFound, AlreadyRunning, InvalidDecision) as exc:
        logger.warning("HITL reject for %s rejected: %s", material_no, exc)
        return error_response(exc, orchestrator)
    return {"success": True, **result}
