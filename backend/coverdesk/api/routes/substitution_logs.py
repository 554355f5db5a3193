from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from coverdesk.api.deps import get_db
from coverdesk.schemas.absence import SubstitutionLogOut
from coverdesk.services import lifecycle

router = APIRouter()


@router.get("/substitution-logs", response_model=list[SubstitutionLogOut])
def list_substitution_logs(
    on_date: date | None = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
) -> list[SubstitutionLogOut]:
    return [SubstitutionLogOut.model_validate(item) for item in lifecycle.list_substitution_logs(db, on_date=on_date)]
