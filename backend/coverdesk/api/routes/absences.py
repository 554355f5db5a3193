from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from coverdesk.api.deps import get_db
from coverdesk.schemas.absence import (
    AbsenceRecordOut,
    AbsenceSubmission,
    AbsenceWithRequestsOut,
    CoverageRequestOut,
)
from coverdesk.services import lifecycle
from coverdesk.services.absence_intake import create_absence

router = APIRouter()


def _absence_out(record, requests) -> AbsenceWithRequestsOut:
    return AbsenceWithRequestsOut(
        absence=AbsenceRecordOut.model_validate(record),
        coverage_requests=[CoverageRequestOut.model_validate(item) for item in requests],
    )


@router.post("/absences", response_model=AbsenceWithRequestsOut, status_code=status.HTTP_201_CREATED)
def submit_absence(payload: AbsenceSubmission, db: Session = Depends(get_db)) -> AbsenceWithRequestsOut:
    absence, requests = create_absence(payload.absence, payload.snapshot)
    record, stored = lifecycle.create_or_update_absence(db, absence, requests)
    return _absence_out(record, stored)


@router.get("/absences", response_model=list[AbsenceWithRequestsOut])
def list_absences(
    on_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> list[AbsenceWithRequestsOut]:
    records = lifecycle.list_absences(db, on_date=on_date)
    return [_absence_out(record, lifecycle.list_coverage_requests(db, record.id)) for record in records]


@router.post("/absences/{absence_id}/cancel", response_model=AbsenceWithRequestsOut)
def cancel_absence(absence_id: str, db: Session = Depends(get_db)) -> AbsenceWithRequestsOut:
    record, requests = lifecycle.cancel_absence(db, absence_id)
    return _absence_out(record, requests)
