from conftest import MONDAY, lesson, school_payload

from coverdesk.schemas.timetable import TimetableSnapshot
from coverdesk.services.class_swap import analyze_class_swap
from coverdesk.services.lesson_index import CoverageContext


def build_context(snapshot, absent=None, **kwargs):
    return CoverageContext.build(snapshot, MONDAY, absent_periods=absent or {"T": []}, **kwargs)


def test_individual_lesson_teacher_can_swap(school_snapshot):
    result = analyze_class_swap("B", 3, MONDAY, build_context(school_snapshot))
    assert result.can_swap is True
    assert result.swap_type == "individual"
    assert result.swap_teacher_id == "I"
    assert result.last_period == 6
    assert result.early_dismissal_period == 5
    assert result.requires_ratification is True
    assert result.day == "Monday"


def test_stay_period_teacher_can_swap(school_snapshot):
    result = analyze_class_swap("A", 1, MONDAY, build_context(school_snapshot))
    assert result.can_swap is True
    assert result.swap_type == "stay"
    assert result.swap_teacher_id == "R"
    assert result.last_period_lesson.class_id == "A"


def test_free_teacher_gives_gap_swap(school_snapshot):
    result = analyze_class_swap("D", 2, MONDAY, build_context(school_snapshot, {"E": []}))
    assert result.can_swap is True
    assert result.swap_type == "gap"
    assert result.swap_teacher_id == "S"
    assert result.early_dismissal_period == 4


def test_absence_in_last_period_is_refused(school_snapshot):
    result = analyze_class_swap("C", 5, MONDAY, build_context(school_snapshot))
    assert result.can_swap is False
    assert result.last_period == 5
    assert result.swap_teacher_id is None


def test_last_period_teacher_teaching_elsewhere_is_refused(school_snapshot):
    result = analyze_class_swap("C", 3, MONDAY, build_context(school_snapshot, {"P": []}))
    assert result.can_swap is False
    assert "busy" in result.reason


def test_absent_last_period_teacher_is_refused(school_snapshot):
    result = analyze_class_swap("A", 1, MONDAY, build_context(school_snapshot, {"T": [], "R": []}))
    assert result.can_swap is False
    assert "absent" in result.reason


def test_committed_last_period_teacher_is_refused(school_snapshot):
    context = build_context(school_snapshot, committed={1: ["R"]})
    result = analyze_class_swap("A", 1, MONDAY, context)
    assert result.can_swap is False
    assert "committed" in result.reason


def test_split_last_period_is_refused():
    payload = school_payload()
    payload["lessons"].append(lesson("P", "A", 6, "history"))
    snapshot = TimetableSnapshot.model_validate(payload)
    result = analyze_class_swap("A", 1, MONDAY, build_context(snapshot))
    assert result.can_swap is False
    assert result.reason == "Last period has no single teacher"


def test_class_without_lessons_is_refused(school_snapshot):
    result = analyze_class_swap("Z", 2, MONDAY, build_context(school_snapshot))
    assert result.can_swap is False
    assert result.last_period is None
