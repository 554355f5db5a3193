from datetime import date

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from coverdesk.api.deps import get_db
from coverdesk.schemas.absence import DailyPoolEntryCreate, DailyPoolEntryOut, DailyPoolOut
from coverdesk.services import lifecycle

router = APIRouter()


@router.get("/daily-pools/{pool_date}", response_model=DailyPoolOut)
def get_daily_pool(pool_date: date, db: Session = Depends(get_db)) -> DailyPoolOut:
    entries = lifecycle.get_daily_pool(db, pool_date)
    return DailyPoolOut(date=pool_date, entries=[DailyPoolEntryOut.model_validate(item) for item in entries])


@router.post(
    "/daily-pools/{pool_date}/entries",
    response_model=DailyPoolEntryOut,
    status_code=status.HTTP_201_CREATED,
)
def add_pool_entry(
    pool_date: date,
    payload: DailyPoolEntryCreate,
    db: Session = Depends(get_db),
) -> DailyPoolEntryOut:
    entry = lifecycle.add_to_daily_pool(
        db,
        pool_date,
        payload.teacher_id,
        source=payload.source,
        period_id=payload.period_id,
    )
    return DailyPoolEntryOut.model_validate(entry)
