from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coverdesk.api.deps import get_db
from coverdesk.schemas.absence import (
    AbsenceRecordOut,
    AssignmentResultOut,
    AssignSubstituteRequest,
    CoverageAssignmentOut,
    CoverageRequestOut,
)
from coverdesk.services import lifecycle

router = APIRouter()


@router.post("/coverage-requests/{request_id}/assign", response_model=AssignmentResultOut)
def assign_substitute(
    request_id: str,
    payload: AssignSubstituteRequest,
    db: Session = Depends(get_db),
) -> AssignmentResultOut:
    assignment, absence, request = lifecycle.assign_substitute(
        db,
        request_id,
        payload.substitute_id,
        substitute_name=payload.substitute_name,
        is_external=payload.is_external,
        reason=payload.reason,
        class_swap=payload.class_swap,
    )
    return AssignmentResultOut(
        assignment=CoverageAssignmentOut.model_validate(assignment),
        absence=AbsenceRecordOut.model_validate(absence),
        coverage_request=CoverageRequestOut.model_validate(request),
    )


@router.post("/coverage-requests/{request_id}/cancel", response_model=CoverageRequestOut)
def cancel_coverage_request(request_id: str, db: Session = Depends(get_db)) -> CoverageRequestOut:
    return CoverageRequestOut.model_validate(lifecycle.cancel_coverage_request(db, request_id))
