from fastapi import APIRouter, Depends

from api.routers.run import error_response, get_orchestrator
from engines.rule_engine import TYPE_CODE_DESCRIPTIONS
from orchestration.orchestrator import NotFound, PipelineOrchestrator

router = APIRouter(prefix="/api", tags=["Reference Data & Statistics"])

PRICE_SAMPLE_SIZE = 50


@router.get("/pr-list", summary="PR line items with their current classification")
def pr_list(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    rows = orchestrator.pr_list()
    return {"total": len(rows), "data": rows}


@router.get("/pr/{material_no}", summary="One PR line item with its Phase 1 analysis")
def pr_detail(material_no: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.pr_detail(material_no)
    except NotFound as exc:
        return error_response(exc, orchestrator)


@router.get("/review-list", summary="Supplier review responses with their current action")
def review_list(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    rows = orchestrator.review_list()
    return {"total": len(rows), "data": rows}


@router.get("/review/{material_no}", summary="One review response with its Phase 2 verification")
def review_detail(material_no: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.review_detail(material_no)
    except NotFound as exc:
        return error_response(exc, orchestrator)


@router.get("/price-table", summary="Contract price groups and reference prices")
def price_table(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    reference = orchestrator.agent_nick.reference
    entries = [entry.to_dict() for entry in reference.price_entries]
    return {
        "total": len(entries),
        "codes": TYPE_CODE_DESCRIPTIONS,
        "groups": reference.price_groups,
        "data": entries[:PRICE_SAMPLE_SIZE],
    }


@router.get("/statistics", summary="Summary of the current result set")
def statistics(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return orchestrator.statistics()
