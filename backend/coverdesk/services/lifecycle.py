from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from coverdesk.core.config import get_settings
from coverdesk.core.exceptions import (
    ConflictingAssignmentError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from coverdesk.models.absence_record import AbsenceKind, AbsenceRecord, AbsenceStatus
from coverdesk.models.coverage_assignment import CoverageAssignment
from coverdesk.models.coverage_request import CoverageRequest, CoverageRequestStatus
from coverdesk.models.daily_pool import RESERVE_SOURCES, DailyPoolEntry, PoolEntrySource
from coverdesk.models.substitution_log import SubstitutionKind, SubstitutionLog
from coverdesk.schemas.absence import DerivedAbsence, DerivedCoverageRequest, SubstitutionLogOut
from coverdesk.schemas.distribution import RankedDecision
from coverdesk.schemas.timetable import TimetableSnapshot
from coverdesk.services.lesson_index import CoverageContext

logger = logging.getLogger(__name__)

# Logs older than this do not influence immunity, continuity or weekly load.
LOG_LOOKBACK_DAYS = 7

_registry_lock = threading.Lock()
# date -> (lock, number of writers holding or waiting on it)
_date_locks: dict[date, tuple[threading.Lock, int]] = {}


@contextmanager
def date_lock(on_date: date) -> Iterator[None]:
    """Serialise writers touching the same school day.

    The entry for a date is dropped once its last writer leaves.
    """
    with _registry_lock:
        lock, holders = _date_locks.get(on_date, (None, 0))
        if lock is None:
            lock = threading.Lock()
        _date_locks[on_date] = (lock, holders + 1)
    try:
        with lock:
            yield
    finally:
        with _registry_lock:
            lock, holders = _date_locks[on_date]
            if holders == 1:
                del _date_locks[on_date]
            else:
                _date_locks[on_date] = (lock, holders - 1)


@contextmanager
def _transaction(db: Session) -> Iterator[None]:
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _absence_periods(record: AbsenceRecord) -> frozenset[int]:
    if record.kind == AbsenceKind.FULL:
        return frozenset()
    return frozenset(record.affected_periods or [])


def _active_absence(db: Session, teacher_id: str, on_date: date) -> AbsenceRecord | None:
    return db.execute(
        select(AbsenceRecord).where(
            AbsenceRecord.teacher_id == teacher_id,
            AbsenceRecord.absence_date == on_date,
            AbsenceRecord.status != AbsenceStatus.CANCELLED,
        )
    ).scalar_one_or_none()


def _is_absent(db: Session, teacher_id: str, on_date: date, period: int) -> bool:
    record = _active_absence(db, teacher_id, on_date)
    if record is None:
        return False
    periods = _absence_periods(record)
    return not periods or period in periods


def _period_locked(db: Session, teacher_id: str, on_date: date, period: int) -> bool:
    assigned = db.execute(
        select(CoverageRequest.id).where(
            CoverageRequest.request_date == on_date,
            CoverageRequest.period_id == period,
            CoverageRequest.assigned_substitute_id == teacher_id,
            CoverageRequest.status == CoverageRequestStatus.ASSIGNED,
        )
    ).first()
    if assigned is not None:
        return True
    mode_driven = db.execute(
        select(SubstitutionLog.id).where(
            SubstitutionLog.log_date == on_date,
            SubstitutionLog.period == period,
            SubstitutionLog.substitute_id == teacher_id,
            SubstitutionLog.coverage_request_id.is_(None),
        )
    ).first()
    return mode_driven is not None


def _ensure_available(db: Session, teacher_id: str, on_date: date, period: int) -> None:
    if _is_absent(db, teacher_id, on_date, period):
        raise ConflictingAssignmentError(
            f"Teacher {teacher_id} is absent in period {period}",
            details={"teacher_id": teacher_id, "date": on_date.isoformat(), "period": period},
        )
    if _period_locked(db, teacher_id, on_date, period):
        raise ConflictingAssignmentError(
            f"Teacher {teacher_id} is already assigned in period {period}",
            details={"teacher_id": teacher_id, "date": on_date.isoformat(), "period": period},
        )


def get_absence(db: Session, absence_id: str) -> AbsenceRecord:
    record = db.get(AbsenceRecord, absence_id)
    if record is None:
        raise ResourceNotFoundError("AbsenceRecord", absence_id)
    return record


def get_coverage_request(db: Session, request_id: str) -> CoverageRequest:
    request = db.get(CoverageRequest, request_id)
    if request is None:
        raise ResourceNotFoundError("CoverageRequest", request_id)
    return request


def list_coverage_requests(db: Session, absence_id: str) -> list[CoverageRequest]:
    query = (
        select(CoverageRequest)
        .where(CoverageRequest.absence_id == absence_id)
        .order_by(CoverageRequest.period_id, CoverageRequest.class_id)
    )
    return list(db.execute(query).scalars())


def list_absences(db: Session, *, on_date: date | None = None) -> list[AbsenceRecord]:
    query = select(AbsenceRecord)
    if on_date is not None:
        query = query.where(AbsenceRecord.absence_date == on_date)
    query = query.order_by(AbsenceRecord.absence_date, AbsenceRecord.teacher_id)
    return list(db.execute(query).scalars())


def _drop_requests(db: Session, absence_id: str) -> int:
    """Delete an absence's requests with the assignments, pool entries and logs they produced."""
    request_ids = list(
        db.execute(select(CoverageRequest.id).where(CoverageRequest.absence_id == absence_id)).scalars()
    )
    if not request_ids:
        return 0
    assignment_ids = list(
        db.execute(
            select(CoverageAssignment.id).where(CoverageAssignment.coverage_request_id.in_(request_ids))
        ).scalars()
    )
    if assignment_ids:
        db.execute(delete(DailyPoolEntry).where(DailyPoolEntry.assignment_id.in_(assignment_ids)))
        db.execute(delete(CoverageAssignment).where(CoverageAssignment.id.in_(assignment_ids)))
    db.execute(delete(SubstitutionLog).where(SubstitutionLog.coverage_request_id.in_(request_ids)))
    db.execute(delete(CoverageRequest).where(CoverageRequest.id.in_(request_ids)))
    return len(request_ids)


def create_or_update_absence(
    db: Session,
    absence: DerivedAbsence,
    requests: Sequence[DerivedCoverageRequest],
) -> tuple[AbsenceRecord, list[CoverageRequest]]:
    """Upsert the absence for (teacher, date) and replace its coverage requests."""
    with date_lock(absence.date), _transaction(db):
        record = db.execute(
            select(AbsenceRecord).where(
                AbsenceRecord.teacher_id == absence.teacher_id,
                AbsenceRecord.absence_date == absence.date,
            )
        ).scalar_one_or_none()
        if record is None:
            record = AbsenceRecord(teacher_id=absence.teacher_id, absence_date=absence.date)
            db.add(record)
            replaced = 0
        else:
            replaced = _drop_requests(db, record.id)
        record.kind = absence.kind
        record.status = AbsenceStatus.OPEN
        record.affected_periods = list(absence.affected_periods)
        record.reason = absence.reason
        record.effective_from = absence.effective_from
        record.effective_to = absence.effective_to
        record.partial_pattern = absence.partial_pattern
        record.partial_type = absence.partial_type
        db.flush()

        for item in requests:
            db.add(
                CoverageRequest(
                    request_date=item.date,
                    period_id=item.period_id,
                    absent_teacher_id=item.absent_teacher_id,
                    absence_id=record.id,
                    class_id=item.class_id,
                    subject=item.subject,
                    status=CoverageRequestStatus.PENDING,
                )
            )

    db.refresh(record)
    created = list_coverage_requests(db, record.id)
    logger.info(
        "Stored %s absence %s for teacher %s on %s: %d requests (%d replaced)",
        record.kind.value,
        record.id,
        record.teacher_id,
        record.absence_date,
        len(created),
        replaced,
    )
    return record, created


def _merge_pool_entry(
    db: Session,
    *,
    pool_date: date,
    teacher_id: str,
    source: PoolEntrySource,
    period_id: int | None,
    assignment_id: str | None,
) -> DailyPoolEntry:
    existing = db.execute(
        select(DailyPoolEntry).where(
            DailyPoolEntry.pool_date == pool_date,
            DailyPoolEntry.teacher_id == teacher_id,
            DailyPoolEntry.period_id.is_(None) if period_id is None else DailyPoolEntry.period_id == period_id,
            DailyPoolEntry.assignment_id.is_(None)
            if assignment_id is None
            else DailyPoolEntry.assignment_id == assignment_id,
        )
    ).scalars().first()
    if existing is not None:
        return existing
    entry = DailyPoolEntry(
        pool_date=pool_date,
        teacher_id=teacher_id,
        source=source,
        period_id=period_id,
        assignment_id=assignment_id,
    )
    db.add(entry)
    return entry


def _refresh_absence_status(db: Session, absence: AbsenceRecord) -> None:
    if absence.status != AbsenceStatus.OPEN:
        return
    db.flush()
    siblings = [
        item for item in list_coverage_requests(db, absence.id) if item.status != CoverageRequestStatus.CANCELLED
    ]
    if siblings and all(item.status == CoverageRequestStatus.ASSIGNED for item in siblings):
        absence.status = AbsenceStatus.COVERED


def assign_substitute(
    db: Session,
    request_id: str,
    substitute_id: str,
    *,
    substitute_name: str | None = None,
    is_external: bool = False,
    reason: str | None = None,
    class_swap: bool = False,
    mode_context: str = "",
    score: float | None = None,
) -> tuple[CoverageAssignment, AbsenceRecord, CoverageRequest]:
    """Resolve one request and cascade the parent absence status.

    Raises ``ConflictingAssignmentError`` when the request is already assigned
    or the substitute is absent or locked in the same period.
    """
    request = get_coverage_request(db, request_id)
    with date_lock(request.request_date), _transaction(db):
        db.refresh(request)
        if request.status == CoverageRequestStatus.CANCELLED:
            raise ValidationFailedError(
                [{"field": "request_id", "reason": "Coverage request is cancelled"}],
                message="Coverage request cannot be assigned",
            )
        if request.status == CoverageRequestStatus.ASSIGNED:
            raise ConflictingAssignmentError(
                f"Coverage request {request.id} is already assigned",
                details={"request_id": request.id, "assigned_substitute_id": request.assigned_substitute_id},
            )
        if substitute_id == request.absent_teacher_id:
            raise ValidationFailedError(
                [{"field": "substitute_id", "reason": "The absent teacher cannot cover their own lesson"}]
            )
        _ensure_available(db, substitute_id, request.request_date, request.period_id)
        absence = get_absence(db, request.absence_id)

        request.status = CoverageRequestStatus.ASSIGNED
        request.assigned_substitute_id = substitute_id
        assignment = CoverageAssignment(
            coverage_request_id=request.id,
            substitute_id=substitute_id,
            assignment_date=request.request_date,
            period_id=request.period_id,
            class_id=request.class_id,
            absent_teacher_id=request.absent_teacher_id,
            absence_id=request.absence_id,
        )
        db.add(assignment)
        db.flush()

        _merge_pool_entry(
            db,
            pool_date=request.request_date,
            teacher_id=substitute_id,
            source=PoolEntrySource.SUBSTITUTE_ASSIGNMENT,
            period_id=request.period_id,
            assignment_id=assignment.id,
        )
        if class_swap:
            kind = SubstitutionKind.class_swap
        elif is_external:
            kind = SubstitutionKind.assign_external
        else:
            kind = SubstitutionKind.assign_internal
        db.add(
            SubstitutionLog(
                log_date=request.request_date,
                period=request.period_id,
                class_id=request.class_id,
                absent_teacher_id=request.absent_teacher_id,
                substitute_id=substitute_id,
                substitute_name=substitute_name or substitute_id,
                kind=kind,
                reason=reason or "",
                mode_context=mode_context,
                coverage_request_id=request.id,
                score=score,
            )
        )
        _refresh_absence_status(db, absence)

    db.refresh(assignment)
    db.refresh(absence)
    db.refresh(request)
    logger.info(
        "Assigned %s to request %s (%s period %s), absence %s is %s",
        substitute_id,
        request.id,
        request.class_id,
        request.period_id,
        absence.id,
        absence.status.value,
    )
    return assignment, absence, request


def cancel_coverage_request(db: Session, request_id: str) -> CoverageRequest:
    """Cancel one request. Siblings and the parent absence are left as they are."""
    request = get_coverage_request(db, request_id)
    if request.status == CoverageRequestStatus.CANCELLED:
        return request
    with date_lock(request.request_date), _transaction(db):
        request.status = CoverageRequestStatus.CANCELLED
    db.refresh(request)
    logger.info("Cancelled coverage request %s", request.id)
    return request


def cancel_absence(db: Session, absence_id: str) -> tuple[AbsenceRecord, list[CoverageRequest]]:
    record = get_absence(db, absence_id)
    with date_lock(record.absence_date), _transaction(db):
        record.status = AbsenceStatus.CANCELLED
        for item in list_coverage_requests(db, record.id):
            if item.status == CoverageRequestStatus.PENDING:
                item.status = CoverageRequestStatus.CANCELLED
    db.refresh(record)
    logger.info("Cancelled absence %s for teacher %s on %s", record.id, record.teacher_id, record.absence_date)
    return record, list_coverage_requests(db, record.id)


def add_to_daily_pool(
    db: Session,
    pool_date: date,
    teacher_id: str,
    *,
    source: PoolEntrySource = PoolEntrySource.MANUAL_ADD,
    period_id: int | None = None,
) -> DailyPoolEntry:
    if source not in RESERVE_SOURCES:
        raise ValidationFailedError(
            [{"field": "source", "reason": "Only reserve entries can be added by hand"}],
        )
    with date_lock(pool_date), _transaction(db):
        entry = _merge_pool_entry(
            db,
            pool_date=pool_date,
            teacher_id=teacher_id,
            source=source,
            period_id=period_id,
            assignment_id=None,
        )
    db.refresh(entry)
    return entry


def get_daily_pool(db: Session, pool_date: date) -> list[DailyPoolEntry]:
    query = (
        select(DailyPoolEntry)
        .where(DailyPoolEntry.pool_date == pool_date)
        .order_by(DailyPoolEntry.created_at, DailyPoolEntry.teacher_id)
    )
    return list(db.execute(query).scalars())


def list_substitution_logs(
    db: Session,
    *,
    on_date: date | None = None,
    since: date | None = None,
) -> list[SubstitutionLog]:
    query = select(SubstitutionLog)
    if on_date is not None:
        query = query.where(SubstitutionLog.log_date == on_date)
    if since is not None:
        query = query.where(SubstitutionLog.log_date >= since)
    query = query.order_by(SubstitutionLog.log_date, SubstitutionLog.period, SubstitutionLog.class_id)
    return list(db.execute(query).scalars())


def record_distribution_assignment(
    db: Session,
    decision: RankedDecision,
    *,
    mode_context: str = "",
) -> SubstitutionLog:
    """Store a mode-driven decision, re-checking the period lock at commit time."""
    if decision.substitute_id is None:
        raise ValidationFailedError([{"field": "substitute_id", "reason": "Decision has no substitute"}])
    with date_lock(decision.date), _transaction(db):
        _ensure_available(db, decision.substitute_id, decision.date, decision.period)
        log = SubstitutionLog(
            log_date=decision.date,
            period=decision.period,
            class_id=decision.class_id,
            absent_teacher_id=decision.original_teacher_id,
            substitute_id=decision.substitute_id,
            substitute_name=decision.substitute_name or decision.substitute_id,
            kind=SubstitutionKind.assign_distribution,
            reason=decision.reason,
            mode_context=mode_context or ",".join(decision.modes),
            score=decision.score,
        )
        db.add(log)
        _merge_pool_entry(
            db,
            pool_date=decision.date,
            teacher_id=decision.substitute_id,
            source=PoolEntrySource.SUBSTITUTE_ASSIGNMENT,
            period_id=decision.period,
            assignment_id=None,
        )
    db.refresh(log)
    return log


def commit_decisions(
    db: Session,
    decisions: Sequence[RankedDecision],
    *,
    mode_context: str = "",
) -> list[RankedDecision]:
    """Commit every proposed decision independently.

    A slot that fails its commit-time check is returned with status
    ``conflict`` and does not affect the other slots.
    """
    results: list[RankedDecision] = []
    for decision in decisions:
        if decision.status != "proposed":
            results.append(decision)
            continue
        try:
            if decision.coverage_request_id is not None:
                assign_substitute(
                    db,
                    decision.coverage_request_id,
                    decision.substitute_id,
                    substitute_name=decision.substitute_name,
                    is_external=decision.is_external,
                    reason=decision.reason,
                    mode_context=mode_context,
                    score=decision.score,
                )
            else:
                record_distribution_assignment(db, decision, mode_context=mode_context)
        except (ConflictingAssignmentError, ResourceNotFoundError, ValidationFailedError) as exc:
            logger.warning(
                "Rejected commit of %s for %s period %s: %s",
                decision.substitute_id,
                decision.class_id,
                decision.period,
                exc.message,
            )
            results.append(decision.model_copy(update={"status": "conflict", "reason": exc.message}))
            continue
        results.append(decision.model_copy(update={"status": "committed"}))
    logger.info(
        "Committed %d of %d decisions",
        sum(1 for item in results if item.status == "committed"),
        len(results),
    )
    return results


def build_coverage_state(db: Session, on_date: date) -> dict:
    """Read absences, locks, the reserve pool and recent logs for one date."""
    absent_periods: dict[str, frozenset[int]] = {}
    for record in list_absences(db, on_date=on_date):
        if record.status != AbsenceStatus.CANCELLED:
            absent_periods[record.teacher_id] = _absence_periods(record)

    committed: dict[int, set[str]] = defaultdict(set)
    assigned = db.execute(
        select(CoverageRequest).where(
            CoverageRequest.request_date == on_date,
            CoverageRequest.status == CoverageRequestStatus.ASSIGNED,
        )
    ).scalars()
    for request in assigned:
        if request.assigned_substitute_id:
            committed[request.period_id].add(request.assigned_substitute_id)

    logs = [
        SubstitutionLogOut.model_validate(item)
        for item in list_substitution_logs(db, since=on_date - timedelta(days=LOG_LOOKBACK_DAYS))
        if item.log_date <= on_date
    ]
    for log in logs:
        if log.log_date == on_date and log.coverage_request_id is None:
            committed[log.period].add(log.substitute_id)

    reserve = {entry.teacher_id for entry in get_daily_pool(db, on_date) if entry.source in RESERVE_SOURCES}
    return {
        "absent_periods": absent_periods,
        "committed": {period: frozenset(ids) for period, ids in committed.items()},
        "reserve_pool_ids": frozenset(reserve),
        "substitution_logs": logs,
    }


def coverage_context_for(db: Session, snapshot: TimetableSnapshot, on_date: date) -> CoverageContext:
    settings = get_settings()
    return CoverageContext.build(
        snapshot,
        on_date,
        **build_coverage_state(db, on_date),
        max_daily_substitutions=settings.max_daily_substitutions,
        alternatives_limit=settings.alternatives_limit,
        immunity_cover_threshold=settings.immunity_cover_threshold,
        immunity_window_hours=settings.immunity_window_hours,
    )
