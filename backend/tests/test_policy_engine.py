from datetime import date

import pytest
from conftest import MONDAY
from pydantic import ValidationError

from coverdesk.core.exceptions import ConfigurationError
from coverdesk.models.substitution_log import SubstitutionKind
from coverdesk.schemas.absence import SubstitutionLogOut
from coverdesk.schemas.candidates import SlotKey
from coverdesk.schemas.policy import ConditionGroup, ModeConfig
from coverdesk.services.lesson_index import CoverageContext
from coverdesk.services.policy_engine import (
    PolicySlot,
    apply_mode_rules,
    build_evaluation_context,
    builtin_modes,
    ensure_valid_mode,
    evaluate_candidate,
    evaluate_group,
    find_linked_mode,
    subject_domain,
    validate_mode,
)

SUNDAY = date(2026, 10, 18)


def slot_for(context, class_id, period, released=()):
    lesson = context.index.original_lesson(class_id, MONDAY, period)
    return PolicySlot(SlotKey(MONDAY, class_id, period), lesson, frozenset(released))


def custom_mode(**overrides):
    data = {
        "id": "custom",
        "name": "Custom",
        "priority_ladder": [{"id": "anyone", "label": "Anyone", "order": 1, "scoring": {"base_score": 100}}],
    }
    data.update(overrides)
    return ModeConfig.model_validate(data)


def mode_by_id(mode_id):
    return next(mode for mode in builtin_modes() if mode.id == mode_id)


def cover_log(substitute_id, on_date, absent_teacher_id="T", period=1):
    return SubstitutionLogOut(
        log_date=on_date,
        period=period,
        class_id="A",
        absent_teacher_id=absent_teacher_id,
        substitute_id=substitute_id,
        substitute_name=substitute_id,
        kind=SubstitutionKind.assign_internal,
    )


def member(context, teacher_id):
    return context.staff_by_id[teacher_id]


def test_exam_mode_puts_home_room_teacher_first(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    ranked = apply_mode_rules(mode_by_id("examMode"), slot_for(context, "A", 3), context)

    allowed = [item.employee.id for item in ranked if item.allowed]
    assert allowed == ["E", "S", "F", "I", "R"]
    top = ranked[0]
    assert top.score == 2160
    assert top.priority == 2
    assert top.reason == "Home-room teacher"
    assert any("Home-room presence (free)" in line for line in top.breakdown)
    rejected = {item.employee.id: item.reason for item in ranked if not item.allowed}
    assert set(rejected) == {"T", "P", "X", "O"}
    assert rejected["X"] == "External staff are disabled in this mode"
    assert rejected["O"] == "Not in school at this period"
    assert rejected["T"] == "Teaching a lesson outside the event"


def test_rejected_candidates_score_zero(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY, absent_periods={"F": []})
    result = evaluate_candidate(member(context, "F"), custom_mode(), slot_for(context, "A", 3), context)
    assert result.allowed is False
    assert result.score == 0
    assert result.violations == ["Absent this period"]


def test_released_lesson_makes_teacher_released(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    slot = slot_for(context, "A", 1, released=[("A", 1)])
    facts = build_evaluation_context(member(context, "T"), slot, context)
    assert facts.slot_state == "released"
    assert facts.is_original_teacher is True
    assert facts.teaching_elsewhere is False

    busy = build_evaluation_context(member(context, "T"), slot_for(context, "A", 1), context)
    assert busy.slot_state == "actual"
    assert busy.teaching_elsewhere is True


def test_shared_lesson_state_uses_lesson_kind(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    facts = build_evaluation_context(member(context, "S"), slot_for(context, "A", 1), context)
    assert facts.slot_state == "actual"
    assert facts.is_co_taught is True
    assert facts.teaching_elsewhere is False


def test_golden_rule_blocks_unless_exception_matches(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    slot = slot_for(context, "A", 3)
    rule = {
        "id": "no-individual",
        "name": "No individual pulls",
        "when": {"conditions": [{"lesson_type": "individual"}]},
        "then": [{"type": "BLOCK_ASSIGNMENT"}],
    }
    blocked = evaluate_candidate(member(context, "I"), custom_mode(golden_rules=[rule]), slot, context)
    assert blocked.allowed is False
    assert blocked.reason == "Blocked by rule No individual pulls"

    rule["exceptions"] = [{"id": "same-grade", "when": {"conditions": [{"relationship": "same_grade"}]}}]
    excused = evaluate_candidate(member(context, "I"), custom_mode(golden_rules=[rule]), slot, context)
    assert excused.allowed is True
    assert excused.score == 100
    assert "Exception applied for rule No individual pulls" in excused.breakdown


def test_soft_rule_penalizes_instead_of_blocking(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    rule = {
        "id": "no-individual",
        "name": "No individual pulls",
        "severity": "SOFT",
        "when": {"conditions": [{"lesson_type": "individual"}]},
        "then": [{"type": "BLOCK_ASSIGNMENT"}],
    }
    result = evaluate_candidate(member(context, "I"), custom_mode(golden_rules=[rule]), slot_for(context, "A", 3), context)
    assert result.allowed is True
    assert result.score == -900
    assert result.violations == ["Soft rule No individual pulls"]


def test_boost_and_penalty_rules_adjust_score(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    rules = [
        {"id": "boost", "name": "Boost free", "when": {"conditions": [{"lesson_type": "free"}]}, "then": [{"type": "BOOST_SCORE", "value": 30}]},
        {"id": "late", "name": "Late periods", "scope": {"periods": [3]}, "then": [{"type": "PENALIZE_SCORE", "value": 5}]},
    ]
    result = evaluate_candidate(member(context, "F"), custom_mode(golden_rules=rules), slot_for(context, "A", 3), context)
    assert result.score == 125


def test_limit_daily_cover_rule(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY, daily_substitutions={"F": 2, "S": 1})
    rule = {"id": "limit", "name": "Two covers a day", "then": [{"type": "LIMIT_DAILY_COVER", "value": 2}]}
    mode = custom_mode(golden_rules=[rule])
    slot = slot_for(context, "A", 3)
    assert evaluate_candidate(member(context, "F"), mode, slot, context).reason == "Blocked by rule Two covers a day"
    assert evaluate_candidate(member(context, "S"), mode, slot, context).allowed is True


def test_rule_scoped_to_other_grade_is_ignored(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    rule = {
        "id": "grade-8",
        "name": "Grade 8 only",
        "scope": {"target_scope": "grades", "grades": [8]},
        "then": [{"type": "BLOCK_ASSIGNMENT"}],
    }
    mode = custom_mode(golden_rules=[rule])
    assert evaluate_candidate(member(context, "F"), mode, slot_for(context, "A", 3), context).allowed is True
    assert evaluate_candidate(member(context, "F"), mode, slot_for(context, "C", 3), context).allowed is False


def test_step_modifiers_are_applied_in_order(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    ladder = [
        {
            "id": "weighted",
            "label": "Weighted",
            "order": 1,
            "weight_percentage": 50,
            "scoring": {
                "base_score": 100,
                "modifiers": [
                    {"id": "stay", "when": {"conditions": [{"lesson_type": "stay"}]}, "operation": "ADD", "value": 20},
                    {"id": "double", "operation": "MULTIPLY", "value": 2},
                    {"id": "flat", "when": {"conditions": [{"lesson_type": "free"}]}, "operation": "SET_TO", "value": 10},
                ],
            },
        }
    ]
    mode = custom_mode(priority_ladder=ladder)
    slot = slot_for(context, "A", 3)
    assert evaluate_candidate(member(context, "R"), mode, slot, context).score == 120
    assert evaluate_candidate(member(context, "F"), mode, slot, context).score == 10


def test_stop_on_match_skips_later_steps(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    ladder = [
        {"id": "first", "label": "First", "order": 1, "stop_on_match": True, "scoring": {"base_score": 100}},
        {"id": "second", "label": "Second", "order": 2, "scoring": {"base_score": 50}},
    ]
    result = evaluate_candidate(member(context, "F"), custom_mode(priority_ladder=ladder), slot_for(context, "A", 3), context)
    assert result.score == 100
    assert result.priority == 1
    assert result.reason == "First"


def test_named_conditions_gate_a_step(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY, absent_periods={"P": []})
    mode = custom_mode(
        conditions={"junior": {"conditions": [{"max_grade": 7}]}},
        priority_ladder=[
            {"id": "junior", "label": "Junior classes", "order": 1, "condition_ids": ["junior"], "scoring": {"base_score": 100}}
        ],
    )
    assert evaluate_candidate(member(context, "F"), mode, slot_for(context, "A", 3), context).score == 100
    senior = evaluate_candidate(member(context, "F"), mode, slot_for(context, "C", 3), context)
    assert senior.score == 0
    assert senior.reason == "No priority step matched"


def test_unknown_condition_reference_is_rejected():
    with pytest.raises(ValidationError):
        custom_mode(priority_ladder=[{"id": "a", "label": "A", "order": 1, "condition_ids": ["missing"]}])


def test_strict_fairness_halves_overloaded_teacher(school_snapshot):
    logs = [cover_log("F", MONDAY, period=period) for period in (1, 4, 6, 7)]
    context = CoverageContext.build(school_snapshot, MONDAY, substitution_logs=logs)
    slot = slot_for(context, "A", 3)
    strict = custom_mode(settings={"fairness_sensitivity": "strict"})
    flexible = custom_mode(settings={"fairness_sensitivity": "flexible"})
    assert evaluate_candidate(member(context, "F"), strict, slot, context).score == 50
    assert evaluate_candidate(member(context, "F"), flexible, slot, context).score == 100


def test_mode_daily_cap_rejects_candidate(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY, daily_substitutions={"F": 2})
    mode = custom_mode(settings={"max_daily_coverage": 2})
    result = evaluate_candidate(member(context, "F"), mode, slot_for(context, "A", 3), context)
    assert result.allowed is False
    assert result.reason == "Reached the daily limit of 2 covers"


def test_immunity_penalty_is_waived_in_emergencies(school_snapshot):
    logs = [cover_log("F", SUNDAY, period=period) for period in range(1, 7)]
    context = CoverageContext.build(school_snapshot, MONDAY, substitution_logs=logs)
    slot = slot_for(context, "A", 3)

    rainy = custom_mode(linked_event_type="RAINY")
    penalized = evaluate_candidate(member(context, "F"), rainy, slot, context)
    assert penalized.allowed is True
    assert penalized.score == -400

    emergency = evaluate_candidate(member(context, "F"), mode_by_id("emergencyMode"), slot, context)
    assert emergency.score == 100
    assert not any("Immunity" in line for line in emergency.breakdown)


def test_continuity_bonus_for_yesterdays_cover(school_snapshot):
    logs = [cover_log("F", SUNDAY, absent_teacher_id="P")]
    context = CoverageContext.build(school_snapshot, MONDAY, absent_periods={"P": []}, substitution_logs=logs)
    result = evaluate_candidate(member(context, "F"), custom_mode(priority_ladder=[]), slot_for(context, "C", 3), context)
    assert result.score == 200
    assert result.reason.startswith("Continuity")


def test_domain_bonus_for_related_subject(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY, absent_periods={"P": []})
    slot = slot_for(context, "C", 3)
    assert evaluate_candidate(member(context, "R"), custom_mode(priority_ladder=[]), slot, context).score == 40
    assert evaluate_candidate(member(context, "F"), custom_mode(priority_ladder=[]), slot, context).score == 0


def test_subject_domain_lookup():
    assert subject_domain("Physics") == "SCIENCES"
    assert subject_domain("رياضيات") == "MATH_TECH"
    assert subject_domain("cooking") is None
    assert subject_domain("") is None


def test_evaluate_group_operators(school_snapshot):
    context = CoverageContext.build(school_snapshot, MONDAY)
    facts = build_evaluation_context(member(context, "F"), slot_for(context, "A", 3), context)
    external = {"teacher_type": "external"}
    internal = {"teacher_type": "internal"}
    free = {"lesson_type": "free"}

    def group(op, *conditions):
        return ConditionGroup.model_validate({"op": op, "conditions": list(conditions)})

    assert evaluate_group(group("AND"), facts) is True
    assert evaluate_group(group("AND", external, free), facts) is False
    assert evaluate_group(group("OR", external, free), facts) is True
    assert evaluate_group(group("NAND", external, free), facts) is True
    assert evaluate_group(group("NAND", internal, free), facts) is False
    nested = {"op": "OR", "conditions": [external, {"op": "AND", "conditions": [internal, free]}]}
    assert evaluate_group(group("AND", nested), facts) is True


def test_validate_mode_reports_every_problem():
    mode = ModeConfig.model_validate(
        {
            "id": "broken",
            "name": "Broken",
            "golden_rules": [
                {"id": "empty", "name": "No effects"},
                {"id": "negative", "name": "Negative", "then": [{"type": "BOOST_SCORE", "value": -5}]},
                {
                    "id": "grades",
                    "name": "Grades",
                    "scope": {"target_scope": "grades"},
                    "then": [{"type": "BLOCK_ASSIGNMENT"}],
                },
            ],
            "priority_ladder": [
                {"id": "a", "label": "A", "order": 1},
                {
                    "id": "a",
                    "label": "B",
                    "order": 1,
                    "filters": {"conditions": [{"min_grade": 9, "max_grade": 7}]},
                },
            ],
        }
    )
    errors = validate_mode(mode)
    assert "Enabled priority steps must have distinct orders" in errors
    assert "Priority step ids must be unique" in errors
    assert "Golden rule empty has no effects" in errors
    assert "Golden rule negative has a negative BOOST_SCORE value" in errors
    assert "Golden rule grades targets grades but lists none" in errors
    assert "step a: min_grade is above max_grade" in errors

    with pytest.raises(ConfigurationError) as exc_info:
        ensure_valid_mode(mode)
    assert exc_info.value.details["mode_id"] == "broken"
    assert exc_info.value.details["errors"] == errors


def test_builtin_modes_are_valid():
    modes = builtin_modes()
    assert [mode.id for mode in modes] == ["examMode", "tripMode", "rainyMode", "emergencyMode"]
    for mode in modes:
        assert validate_mode(mode) == []


def test_find_linked_mode():
    modes = builtin_modes()
    assert find_linked_mode(modes, "TRIP").id == "tripMode"
    assert find_linked_mode(modes, "HOLIDAY") is None
    modes[0].is_active = False
    assert find_linked_mode(modes, "EXAM") is None
