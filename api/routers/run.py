import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config.settings import ConfigurationError
from orchestration.orchestrator import (
    AlreadyRunning,
    InvalidDecision,
    NotFound,
    PipelineOrchestrator,
)
from services.inference_client import InferenceCallError
from utils.response_recovery import MalformedInferenceOutput

router = APIRouter(prefix="/api", tags=["Run"])

logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    """Request schema for the ``/api/run`` endpoint."""

    background: bool = False


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if not orchestrator:
        raise HTTPException(
            status_code=503, detail="Orchestrator service is not available."
        )
    return orchestrator


def error_status(exc: Exception) -> int:
    if isinstance(exc, AlreadyRunning):
        return 409
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, InvalidDecision):
        return 422
    if isinstance(exc, ConfigurationError):
        return 503
    if isinstance(exc, (InferenceCallError, MalformedInferenceOutput)):
        return 502
    return 500


def error_response(exc: Exception, orchestrator: PipelineOrchestrator) -> JSONResponse:
    """Error body that still carries the run state reached so far."""

    return JSONResponse(
        status_code=error_status(exc),
        content={"success": False, "error": str(exc), "state": orchestrator.get_state()},
    )


@router.post("/run")
def start_run(
    req: Optional[RunRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Run the six-stage pipeline, optionally on a background thread."""

    background = bool(req and req.background)
    try:
        state = orchestrator.start_run(background=background)
    except Exception as exc:
        if error_status(exc) == 500:
            logger.exception("Pipeline run failed unexpectedly")
        else:
            logger.warning("Pipeline run rejected or failed: %s", exc)
        return error_response(exc, orchestrator)
    return {"success": True, "error": None, "state": state}


@router.post("/reset")
def reset_run(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        state = orchestrator.reset()
    except AlreadyRunning as exc:
        return error_response(exc, orchestrator)
    return {"success": True, "message": "Pipeline state reset", "state": state}


@router.get("/state")
def current_state(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    return {"success": True, "state": orchestrator.get_state()}
