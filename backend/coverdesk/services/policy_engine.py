from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from math import ceil

from coverdesk.core.exceptions import ConfigurationError
from coverdesk.schemas.candidates import SlotKey
from coverdesk.schemas.policy import (
    Condition,
    ConditionGroup,
    EventType,
    GoldenRule,
    ModeConfig,
    RankedCandidate,
)
from coverdesk.schemas.timetable import Lesson, StaffMember
from coverdesk.services.lesson_index import CoverageContext, lesson_activity

logger = logging.getLogger(__name__)

SUBJECT_DOMAINS: dict[str, tuple[str, ...]] = {
    "SCIENCES": ("علوم", "فيزياء", "كيمياء", "أحياء", "science", "physics", "chemistry", "biology"),
    "MATH_TECH": ("رياضيات", "حاسوب", "تكنولوجيا", "math", "computer", "technology"),
    "LANGUAGES": ("لغة عربية", "لغة إنجليزية", "لغة عبرية", "arabic", "english", "hebrew"),
    "HUMANITIES": ("تاريخ", "جغرافيا", "مدنيات", "دين", "تربية إسلامية", "history", "geography", "civics", "religion"),
    "ARTS_SPORTS": ("فنون", "رياضة", "موسيقى", "art", "sport", "music"),
}

AVERAGE_WEEKLY_LOAD = 2
IMMUNITY_PENALTY = 500
CONTINUITY_BONUS = 200
DOMAIN_BONUS = 40
GOVERNING_SUBJECT_BONUS = 300
SUPPORT_PROCTOR_BONUS = 150
SOFT_BLOCK_PENALTY = 1000
HOMEROOM_PRESENCE_BONUS = {"stay": 3000, "individual": 2500, "free": 2000, "released": 2000}


def subject_domain(subject: str) -> str | None:
    normalized = subject.strip().lower()
    if not normalized:
        return None
    for domain, subjects in SUBJECT_DOMAINS.items():
        if any(item in normalized for item in subjects):
            return domain
    return None


def _subjects_match(left: str, right: str) -> bool:
    left = left.strip().lower()
    right = right.strip().lower()
    if not left or not right:
        return False
    return left in right or right in left


def _longest_streak(periods: Iterable[int]) -> int:
    ordered = sorted(set(periods))
    if not ordered:
        return 0
    best = current = 1
    for previous, following in zip(ordered, ordered[1:]):
        current = current + 1 if following == previous + 1 else 1
        best = max(best, current)
    return best


@dataclass(frozen=True)
class PolicySlot:
    """The slot a mode run is filling."""

    key: SlotKey
    original_lesson: Lesson | None = None
    released: frozenset[tuple[str, int]] = frozenset()

    @property
    def original_teacher_id(self) -> str | None:
        return self.original_lesson.teacher_id if self.original_lesson is not None else None

    @property
    def subject(self) -> str:
        return self.original_lesson.subject if self.original_lesson is not None else ""


@dataclass(frozen=True)
class EvaluationContext:
    teacher_type: str
    is_homeroom: bool
    is_class_educator: bool
    is_original_teacher: bool
    daily_covers: int
    weekly_covers: int
    fairness_deviation: int
    consecutive_periods: int
    is_off_duty: bool
    is_immune: bool
    period: int
    slot_state: str
    slot_subject: str
    is_co_taught: bool
    teaching_elsewhere: bool
    same_class: bool
    same_grade: bool
    same_subject: bool
    same_domain: bool
    continuity_match: bool
    taught_class_today: bool
    matches_governing_subject: bool
    subject_teacher_roaming: bool
    class_grade: int


def build_evaluation_context(
    member: StaffMember,
    slot: PolicySlot,
    context: CoverageContext,
    mode: ModeConfig | None = None,
) -> EvaluationContext:
    """Derive every fact the conditions can test, from inputs only."""
    on_date = slot.key.date
    period = slot.key.period
    class_id = slot.key.class_id
    index = context.index

    own_lessons = index.lessons_at(member.id, on_date, period)
    day_lessons = index.teacher_lessons(member.id, on_date)
    day_periods = [item.period for item in day_lessons]

    if not own_lessons:
        slot_state = "free"
    elif all((item.class_id, item.period) in slot.released for item in own_lessons):
        slot_state = "released"
    else:
        slot_state = index.slot_activity(member.id, on_date, period)
        if slot_state == "shared":
            slot_state = next(item.kind for item in own_lessons if lesson_activity(item) == "shared")
    is_co_taught = any(item.is_shared for item in own_lessons)
    slot_subject = own_lessons[0].subject if own_lessons else ""

    member_logs = [log for log in context.substitution_logs if log.substitute_id == member.id]
    week_start = on_date - timedelta(days=on_date.weekday())
    weekly_covers = sum(1 for log in member_logs if week_start <= log.log_date <= on_date)
    window_days = max(1, ceil(context.immunity_window_hours / 24))
    recent_covers = sum(1 for log in member_logs if on_date - timedelta(days=window_days) < log.log_date <= on_date)
    today_cover_periods = [log.period for log in member_logs if log.log_date == on_date]

    is_off_duty = False
    if not member.is_external and member.id not in context.reserve_pool_ids:
        if not day_periods or period < min(day_periods) or period > max(day_periods):
            is_off_duty = True

    yesterday = on_date - timedelta(days=1)
    continuity_match = slot.original_teacher_id is not None and any(
        log.log_date == yesterday and log.absent_teacher_id == slot.original_teacher_id for log in member_logs
    )

    target_domain = subject_domain(slot.subject)
    same_subject = any(_subjects_match(item, slot.subject) for item in member.subjects)
    same_domain = target_domain is not None and any(subject_domain(item) == target_domain for item in member.subjects)

    class_grade = context.grade_of(class_id)
    same_grade = class_grade > 0 and any(
        context.grade_of(item.class_id) == class_grade for item in day_lessons if item.class_id != class_id
    )

    governing = ""
    if mode is not None and mode.settings is not None:
        governing = mode.settings.governing_subject.strip()
    matches_governing = bool(governing) and any(_subjects_match(item, governing) for item in member.subjects)
    roaming = bool(governing) and any(
        _subjects_match(item.subject, governing) and item.class_id != class_id
        for item in index.lessons_in_period(on_date, period)
    )

    return EvaluationContext(
        teacher_type="external" if member.is_external else "internal",
        is_homeroom=member.is_educator,
        is_class_educator=member.educates(class_id),
        is_original_teacher=slot.original_teacher_id == member.id,
        daily_covers=context.daily_count(member.id),
        weekly_covers=weekly_covers,
        fairness_deviation=weekly_covers - AVERAGE_WEEKLY_LOAD,
        consecutive_periods=_longest_streak(day_periods + today_cover_periods),
        is_off_duty=is_off_duty,
        is_immune=recent_covers >= context.immunity_cover_threshold,
        period=period,
        slot_state=slot_state,
        slot_subject=slot_subject,
        is_co_taught=is_co_taught,
        teaching_elsewhere=any(
            lesson_activity(item) in ("actual", "duty") and (item.class_id, item.period) not in slot.released
            for item in own_lessons
        ),
        same_class=any(item.class_id == class_id for item in own_lessons),
        same_grade=same_grade,
        same_subject=same_subject,
        same_domain=same_domain,
        continuity_match=continuity_match,
        taught_class_today=any(item.class_id == class_id and item.period != period for item in day_lessons),
        matches_governing_subject=matches_governing,
        subject_teacher_roaming=roaming,
        class_grade=class_grade,
    )


RELATIONSHIP_FACTS = {
    "same_class": "same_class",
    "same_grade": "same_grade",
    "is_homeroom": "is_homeroom",
    "same_homeroom": "is_class_educator",
    "same_subject": "same_subject",
    "same_domain": "same_domain",
    "continuity_match": "continuity_match",
    "original_teacher": "is_original_teacher",
    "governing_subject": "matches_governing_subject",
}


def evaluate_condition(condition: Condition, facts: EvaluationContext) -> bool:
    if condition.teacher_type != "any" and condition.teacher_type != facts.teacher_type:
        return False
    if condition.lesson_type != "any":
        if condition.lesson_type == "shared":
            if not facts.is_co_taught:
                return False
        elif condition.lesson_type == "free":
            # A released teacher counts as free.
            if facts.slot_state not in ("free", "released"):
                return False
        elif condition.lesson_type != facts.slot_state:
            return False
    if condition.subject != "any" and condition.subject not in facts.slot_subject:
        return False
    if condition.time_context == "same_day_stay" and facts.slot_state != "stay":
        return False
    if condition.time_context == "during_school" and facts.period <= 0:
        return False
    if condition.time_context == "is_immune_period" and not facts.is_immune:
        return False
    if condition.relationship != "any" and not getattr(facts, RELATIONSHIP_FACTS[condition.relationship]):
        return False
    if condition.min_grade is not None and facts.class_grade < condition.min_grade:
        return False
    if condition.max_grade is not None and facts.class_grade > condition.max_grade:
        return False
    if condition.daily_covers_above is not None and facts.daily_covers <= condition.daily_covers_above:
        return False
    if condition.consecutive_periods_above is not None and facts.consecutive_periods <= condition.consecutive_periods_above:
        return False
    return True


def evaluate_group(group: ConditionGroup, facts: EvaluationContext) -> bool:
    if not group.conditions:
        return True
    results = (
        evaluate_group(item, facts) if isinstance(item, ConditionGroup) else evaluate_condition(item, facts)
        for item in group.conditions
    )
    if group.op == "AND":
        return all(results)
    if group.op == "OR":
        return any(results)
    return not all(results)


def _rule_in_scope(rule: GoldenRule, slot: PolicySlot, facts: EvaluationContext) -> bool:
    scope = rule.scope
    if scope.periods and slot.key.period not in scope.periods:
        return False
    if scope.target_scope == "grades":
        return facts.class_grade in scope.grades
    if scope.target_scope == "classes":
        return slot.key.class_id in scope.class_ids
    return True


def _reject(result: RankedCandidate, violation: str) -> RankedCandidate:
    result.allowed = False
    result.score = 0
    result.violations.append(violation)
    result.reason = violation
    return result


def evaluate_candidate(
    member: StaffMember,
    mode: ModeConfig,
    slot: PolicySlot,
    context: CoverageContext,
) -> RankedCandidate:
    """Score one roster member for a slot under ``mode``."""
    result = RankedCandidate(
        employee=member,
        daily_covers=context.daily_count(member.id),
        roster_index=context.roster_index.get(member.id, 0),
    )
    if context.is_absent(member.id, slot.key.period):
        return _reject(result, "Absent this period")
    if member.id in context.committed_for(slot.key.period):
        return _reject(result, "Already committed elsewhere this period")

    facts = build_evaluation_context(member, slot, context, mode)
    if facts.is_off_duty:
        return _reject(result, "Not in school at this period")
    if facts.teaching_elsewhere:
        return _reject(result, "Teaching a lesson outside the event")
    cap = mode.settings.max_daily_coverage if mode.settings is not None else context.max_daily_substitutions
    if facts.daily_covers >= cap:
        return _reject(result, f"Reached the daily limit of {cap} covers")

    score = 0.0
    settings = mode.settings
    if facts.is_immune and mode.linked_event_type != "EMERGENCY":
        score -= IMMUNITY_PENALTY
        result.breakdown.append(f"Immunity active: -{IMMUNITY_PENALTY}")

    if settings is not None:
        if not settings.allow_external and member.is_external:
            return _reject(result, "External staff are disabled in this mode")
        if not settings.allow_stay_pull and facts.slot_state == "stay":
            return _reject(result, "Stay periods cannot be pulled in this mode")
        if not settings.allow_individual_pull and facts.slot_state == "individual":
            return _reject(result, "Individual lessons cannot be pulled in this mode")
        if not settings.allow_shared_pull and facts.is_co_taught:
            return _reject(result, "Co-taught lessons cannot be pulled in this mode")
        if settings.force_homeroom_presence and facts.is_class_educator:
            bonus = HOMEROOM_PRESENCE_BONUS.get(facts.slot_state)
            if bonus:
                score += bonus
                result.breakdown.append(f"Home-room presence ({facts.slot_state}): +{bonus}")
        if settings.prioritize_governing_subject:
            if facts.matches_governing_subject:
                score += GOVERNING_SUBJECT_BONUS
                result.breakdown.append(f"Governing subject match: +{GOVERNING_SUBJECT_BONUS}")
            elif facts.subject_teacher_roaming:
                score += SUPPORT_PROCTOR_BONUS
                result.breakdown.append(f"Support proctor for roaming subject teachers: +{SUPPORT_PROCTOR_BONUS}")

    for rule in mode.golden_rules:
        if not rule.is_enabled or not _rule_in_scope(rule, slot, facts):
            continue
        if not evaluate_group(rule.when, facts):
            continue
        if any(evaluate_group(item.when, facts) for item in rule.exceptions):
            result.breakdown.append(f"Exception applied for rule {rule.name}")
            continue
        for effect in rule.then:
            blocks = effect.type == "BLOCK_ASSIGNMENT"
            blocks = blocks or (effect.type == "FORCE_INTERNAL_ONLY" and member.is_external)
            blocks = blocks or (effect.type == "LIMIT_DAILY_COVER" and facts.daily_covers >= effect.value)
            if blocks:
                if rule.severity == "SOFT":
                    score -= SOFT_BLOCK_PENALTY
                    result.violations.append(f"Soft rule {rule.name}")
                    continue
                return _reject(result, f"Blocked by rule {rule.name}")
            if effect.type == "BOOST_SCORE":
                score += effect.value
                result.breakdown.append(f"Rule bonus ({rule.name}): +{effect.value:g}")
            elif effect.type == "PENALIZE_SCORE":
                score -= effect.value
                result.breakdown.append(f"Rule penalty ({rule.name}): -{effect.value:g}")

    if facts.continuity_match:
        score += CONTINUITY_BONUS
        result.breakdown.append(f"Continuity, covered this teacher yesterday: +{CONTINUITY_BONUS}")
    if facts.same_domain and not facts.same_subject:
        score += DOMAIN_BONUS
        result.breakdown.append(f"Subject domain match: +{DOMAIN_BONUS}")

    matched: list[str] = []
    steps = sorted((step for step in mode.priority_ladder if step.is_enabled), key=lambda step: step.order)
    for step in steps:
        if not all(evaluate_group(mode.conditions[name], facts) for name in step.condition_ids):
            continue
        if not evaluate_group(step.filters, facts):
            continue
        step_score = step.scoring.base_score
        multiplier = 1.0
        for modifier in step.scoring.modifiers:
            if not evaluate_group(modifier.when, facts):
                continue
            if modifier.operation == "ADD":
                step_score += modifier.value
            elif modifier.operation == "SUBTRACT":
                step_score -= modifier.value
            elif modifier.operation == "MULTIPLY":
                multiplier *= modifier.value
            else:
                step_score = modifier.value
        weighted = step_score * multiplier * step.weight_percentage / 100
        score += weighted
        matched.append(step.label)
        if result.priority == 999:
            result.priority = step.order
        result.breakdown.append(f"Matched step {step.label}: +{weighted:.1f}")
        if step.stop_on_match:
            break

    if settings is not None:
        if settings.fairness_sensitivity == "strict" and facts.fairness_deviation > 1:
            score *= 0.5
            result.breakdown.append("Strict fairness: -50%")
        elif settings.fairness_sensitivity == "flexible" and facts.fairness_deviation > 2:
            score *= 0.8
            result.breakdown.append("Fairness balancing: -20%")

    result.score = round(score, 4)
    if matched:
        result.reason = matched[0]
    elif result.breakdown:
        result.reason = result.breakdown[0]
    else:
        result.reason = "No priority step matched"
    return result


def ranking_key(item: RankedCandidate) -> tuple:
    return (not item.allowed, -item.score, item.priority, item.daily_covers, item.roster_index)


def apply_mode_rules(mode: ModeConfig, slot: PolicySlot, context: CoverageContext) -> list[RankedCandidate]:
    """Rank the whole roster for one slot, best first."""
    ranked = [evaluate_candidate(member, mode, slot, context) for member in context.snapshot.staff]
    ranked.sort(key=ranking_key)
    logger.debug(
        "Mode %s ranked %d candidates for %s/%s (%d allowed)",
        mode.id,
        len(ranked),
        slot.key.class_id,
        slot.key.period,
        sum(1 for item in ranked if item.allowed),
    )
    return ranked


def _group_conditions(group: ConditionGroup) -> Iterable[Condition]:
    for item in group.conditions:
        if isinstance(item, ConditionGroup):
            yield from _group_conditions(item)
        else:
            yield item


def validate_mode(mode: ModeConfig) -> list[str]:
    """Return a list of configuration problems. An empty list means the mode is usable."""
    errors: list[str] = []
    orders = [step.order for step in mode.priority_ladder if step.is_enabled]
    if len(orders) != len(set(orders)):
        errors.append("Enabled priority steps must have distinct orders")
    step_ids = [step.id for step in mode.priority_ladder]
    if len(step_ids) != len(set(step_ids)):
        errors.append("Priority step ids must be unique")
    rule_ids = [rule.id for rule in mode.golden_rules]
    if len(rule_ids) != len(set(rule_ids)):
        errors.append("Golden rule ids must be unique")

    groups: list[tuple[str, ConditionGroup]] = [(f"condition {name}", group) for name, group in mode.conditions.items()]
    for rule in mode.golden_rules:
        if rule.is_enabled and not rule.then:
            errors.append(f"Golden rule {rule.id} has no effects")
        for effect in rule.then:
            if effect.type in ("BOOST_SCORE", "PENALIZE_SCORE", "LIMIT_DAILY_COVER") and effect.value < 0:
                errors.append(f"Golden rule {rule.id} has a negative {effect.type} value")
        if rule.scope.target_scope == "grades" and not rule.scope.grades:
            errors.append(f"Golden rule {rule.id} targets grades but lists none")
        if rule.scope.target_scope == "classes" and not rule.scope.class_ids:
            errors.append(f"Golden rule {rule.id} targets classes but lists none")
        groups.append((f"rule {rule.id}", rule.when))
        groups.extend((f"rule {rule.id} exception {item.id}", item.when) for item in rule.exceptions)
    for step in mode.priority_ladder:
        groups.append((f"step {step.id}", step.filters))
        groups.extend((f"step {step.id} modifier {item.id}", item.when) for item in step.scoring.modifiers)

    for label, group in groups:
        for condition in _group_conditions(group):
            if (
                condition.min_grade is not None
                and condition.max_grade is not None
                and condition.min_grade > condition.max_grade
            ):
                errors.append(f"{label}: min_grade is above max_grade")
    return errors


def ensure_valid_mode(mode: ModeConfig) -> ModeConfig:
    errors = validate_mode(mode)
    if errors:
        raise ConfigurationError(f"Mode {mode.id} is misconfigured", details={"mode_id": mode.id, "errors": errors})
    return mode


def find_linked_mode(modes: Sequence[ModeConfig], event_type: EventType) -> ModeConfig | None:
    for mode in modes:
        if mode.is_active and mode.linked_event_type == event_type:
            return mode
    return None


def builtin_modes() -> list[ModeConfig]:
    """Preset modes for the four school-wide event types."""
    free_step = {
        "id": "free",
        "label": "Free teacher on site",
        "order": 3,
        "weight_percentage": 70,
        "filters": {"conditions": [{"lesson_type": "free"}]},
        "scoring": {"base_score": 100},
    }
    individual_step = {
        "id": "individual",
        "label": "Pull from individual lesson",
        "order": 4,
        "weight_percentage": 50,
        "filters": {"conditions": [{"lesson_type": "individual"}]},
        "scoring": {"base_score": 100},
    }
    return [
        ModeConfig.model_validate(
            {
                "id": "examMode",
                "name": "Exam day",
                "linked_event_type": "EXAM",
                "settings": {
                    "allow_external": False,
                    "force_homeroom_presence": True,
                    "prioritize_governing_subject": True,
                    "fairness_sensitivity": "strict",
                },
                "golden_rules": [
                    {
                        "id": "GR-NO-EXTERNAL",
                        "name": "Internal proctors only",
                        "then": [{"type": "FORCE_INTERNAL_ONLY"}],
                    }
                ],
                "priority_ladder": [
                    {
                        "id": "original",
                        "label": "Class's own teacher, released by the exam",
                        "order": 1,
                        "filters": {"conditions": [{"relationship": "original_teacher"}]},
                        "scoring": {"base_score": 100},
                    },
                    {
                        "id": "educator",
                        "label": "Home-room teacher",
                        "order": 2,
                        "weight_percentage": 90,
                        "filters": {"conditions": [{"relationship": "same_homeroom"}]},
                        "scoring": {"base_score": 100},
                    },
                    free_step,
                    individual_step,
                ],
            }
        ),
        ModeConfig.model_validate(
            {
                "id": "tripMode",
                "name": "School trip",
                "linked_event_type": "TRIP",
                "settings": {"allow_stay_pull": False, "fairness_sensitivity": "flexible"},
                "golden_rules": [
                    {
                        "id": "GR-NO-STAY-COVER",
                        "name": "Do not pull stay periods",
                        "when": {"conditions": [{"lesson_type": "stay"}]},
                        "then": [{"type": "BLOCK_ASSIGNMENT"}],
                    }
                ],
                "priority_ladder": [
                    {
                        "id": "released",
                        "label": "Teacher released by the trip",
                        "order": 1,
                        "filters": {"conditions": [{"lesson_type": "released"}]},
                        "scoring": {"base_score": 100},
                    },
                    {
                        "id": "educator",
                        "label": "Home-room teacher",
                        "order": 2,
                        "weight_percentage": 90,
                        "filters": {"conditions": [{"relationship": "same_homeroom"}]},
                        "scoring": {"base_score": 100},
                    },
                    free_step,
                ],
            }
        ),
        ModeConfig.model_validate(
            {
                "id": "rainyMode",
                "name": "Rainy day",
                "linked_event_type": "RAINY",
                "settings": {"fairness_sensitivity": "flexible"},
                "priority_ladder": [
                    {
                        "id": "same-grade",
                        "label": "Teacher from the same grade",
                        "order": 1,
                        "filters": {"conditions": [{"relationship": "same_grade"}]},
                        "scoring": {"base_score": 100},
                    },
                    free_step,
                    individual_step,
                ],
            }
        ),
        ModeConfig.model_validate(
            {
                "id": "emergencyMode",
                "name": "Emergency",
                "linked_event_type": "EMERGENCY",
                "settings": {"max_daily_coverage": 8},
                "priority_ladder": [
                    {
                        "id": "anyone",
                        "label": "Anyone on site",
                        "order": 1,
                        "scoring": {
                            "base_score": 100,
                            "modifiers": [
                                {
                                    "id": "stay-first",
                                    "when": {"conditions": [{"lesson_type": "stay"}]},
                                    "operation": "ADD",
                                    "value": 20,
                                    "label": "Stay periods first",
                                }
                            ],
                        },
                    }
                ],
            }
        ),
    ]
