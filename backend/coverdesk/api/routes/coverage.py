from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coverdesk.api.deps import get_db
from coverdesk.schemas.absence import CoverageRequestOut
from coverdesk.schemas.candidates import ClassifiedCandidates, SlotKey, SwapOpportunity
from coverdesk.schemas.coverage import (
    AbsenceDistributionRequest,
    DistributionResultOut,
    ModeDistributionRequest,
    SlotRequest,
)
from coverdesk.schemas.distribution import summarize
from coverdesk.services import lifecycle
from coverdesk.services.candidate_classifier import classify_candidates
from coverdesk.services.class_swap import analyze_class_swap
from coverdesk.services.distribution import distribute_absence, run_mode_distribution
from coverdesk.services.policy_engine import ensure_valid_mode

router = APIRouter()


@router.post("/classify", response_model=ClassifiedCandidates)
def classify_slot(payload: SlotRequest, db: Session = Depends(get_db)) -> ClassifiedCandidates:
    context = lifecycle.coverage_context_for(db, payload.snapshot, payload.date)
    return classify_candidates(SlotKey(payload.date, payload.class_id, payload.period), context)


@router.post("/class-swap", response_model=SwapOpportunity)
def class_swap(payload: SlotRequest, db: Session = Depends(get_db)) -> SwapOpportunity:
    context = lifecycle.coverage_context_for(db, payload.snapshot, payload.date)
    return analyze_class_swap(payload.class_id, payload.period, payload.date, context)


@router.post("/absences/{absence_id}/distribute", response_model=DistributionResultOut)
def distribute_for_absence(
    absence_id: str,
    payload: AbsenceDistributionRequest,
    db: Session = Depends(get_db),
) -> DistributionResultOut:
    absence = lifecycle.get_absence(db, absence_id)
    requests = [CoverageRequestOut.model_validate(item) for item in lifecycle.list_coverage_requests(db, absence.id)]
    context = lifecycle.coverage_context_for(db, payload.snapshot, absence.absence_date)
    decisions = distribute_absence(requests, context)
    if payload.auto_commit:
        decisions = lifecycle.commit_decisions(db, decisions)
    return DistributionResultOut(decisions=decisions, summary=summarize(decisions))


@router.post("/modes/distribute", response_model=DistributionResultOut)
def distribute_for_modes(payload: ModeDistributionRequest, db: Session = Depends(get_db)) -> DistributionResultOut:
    for confirmed in payload.modes:
        ensure_valid_mode(confirmed.mode)
    context = lifecycle.coverage_context_for(db, payload.snapshot, payload.date)
    decisions = run_mode_distribution(payload.modes, context)
    if payload.auto_commit:
        decisions = lifecycle.commit_decisions(db, decisions)
    return DistributionResultOut(decisions=decisions, summary=summarize(decisions))
