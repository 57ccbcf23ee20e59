"""
Assignment Status Resolver.

Turns an (assignment, submission, now) triple into one canonical status.
Resolution is a pure function: it reads nothing but its arguments and
writes nothing.

Due dates carry no time of day; "past due" is decided on calendar dates
so the result does not shift with the time zone of the caller.

Also estimates urgency, effort and stress per assignment so work can be
ordered and summarized for the learner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .models import Assignment, AssignmentState, Submission, SubmissionState


class ResolvedStatus(str, Enum):
    """Canonical assignment status for one learner."""
    NOT_STARTED = "NOT_STARTED"
    DRAFT = "DRAFT"
    TURNED_IN = "TURNED_IN"
    TURNED_IN_LATE = "TURNED_IN_LATE"
    GRADED = "GRADED"
    MISSING = "MISSING"
    NOT_ACCEPTING = "NOT_ACCEPTING"
    DELETED = "DELETED"
    UNKNOWN = "UNKNOWN"


# Work is done; no deadline or overdue reminders
TERMINAL_STATUSES = frozenset({
    ResolvedStatus.GRADED,
    ResolvedStatus.TURNED_IN,
    ResolvedStatus.TURNED_IN_LATE,
})


@dataclass(frozen=True)
class StatusResolution:
    """Result of resolving one assignment."""
    status: ResolvedStatus
    grade: Optional[float] = None
    late: bool = False

    @property
    def is_completed(self) -> bool:
        return self.status in TERMINAL_STATUSES


def due_datetime(due: date, now: datetime) -> datetime:
    """Start of the due day, in the same time zone as now."""
    return datetime.combine(due, time.min, tzinfo=now.tzinfo)


def is_due_passed(due: Optional[date], now: datetime) -> bool:
    return due is not None and now.date() > due


def hours_until_due(due: Optional[date], now: datetime) -> Optional[float]:
    if due is None:
        return None
    return (due_datetime(due, now) - now) / timedelta(hours=1)


def days_overdue(due: Optional[date], now: datetime) -> int:
    """Whole days elapsed since the start of the due day (0 if not overdue)."""
    if due is None:
        return 0
    return max(0, (now - due_datetime(due, now)) // timedelta(days=1))


def _align(moment: datetime, now: datetime) -> datetime:
    if moment.tzinfo is not None and now.tzinfo is None:
        return moment.astimezone().replace(tzinfo=None)
    if moment.tzinfo is None and now.tzinfo is not None:
        return moment.replace(tzinfo=now.tzinfo)
    return moment


def assignment_age_days(assignment: Assignment, now: datetime) -> Optional[int]:
    """Days since the assignment was posted, if its creation time is known."""
    if assignment.creation_time is None:
        return None
    return max(0, (now - _align(assignment.creation_time, now)) // timedelta(days=1))


def resolve_status(
    assignment: Assignment,
    submission: Optional[Submission],
    now: datetime,
) -> StatusResolution:
    """
    Resolve the canonical status of an assignment.

    Rules are checked in order: deletion, absence of a submission, grade,
    turn-in (late or on time), missing, not accepting, draft, unknown. A
    grade wins over any lateness signal and a turned-in submission is never
    reported missing.

    Args:
        assignment: The coursework item
        submission: The learner's submission, or None if there is none
        now: Evaluation time

    Returns:
        StatusResolution with the status, grade (when graded) and late flag
    """
    if assignment.state == AssignmentState.DELETED:
        return StatusResolution(ResolvedStatus.DELETED)

    if submission is None:
        return StatusResolution(ResolvedStatus.NOT_STARTED)

    if submission.grade is not None:
        return StatusResolution(ResolvedStatus.GRADED, grade=submission.grade, late=submission.late)

    past_due = is_due_passed(assignment.due_date, now)

    if submission.state == SubmissionState.TURNED_IN:
        if submission.late or past_due:
            return StatusResolution(ResolvedStatus.TURNED_IN_LATE, late=True)
        return StatusResolution(ResolvedStatus.TURNED_IN)

    if submission.state == SubmissionState.CREATED and (submission.late or past_due):
        return StatusResolution(ResolvedStatus.MISSING, late=submission.late)

    # Shadowed by the MISSING rule above; kept to document precedence.
    if past_due and submission.state == SubmissionState.CREATED:
        return StatusResolution(ResolvedStatus.NOT_ACCEPTING, late=submission.late)

    if submission.state == SubmissionState.CREATED:
        return StatusResolution(ResolvedStatus.DRAFT)

    return StatusResolution(ResolvedStatus.UNKNOWN)


@dataclass
class ResolvedAssignment:
    """An assignment paired with its submission and resolved status."""
    assignment: Assignment
    submission: Optional[Submission]
    resolution: StatusResolution
    course_name: Optional[str] = None

    @property
    def status(self) -> ResolvedStatus:
        return self.resolution.status

    @property
    def max_points(self) -> float:
        if self.submission and self.submission.assigned_max_points:
            return self.submission.assigned_max_points
        return self.assignment.max_points


def resolve_all(
    assignments: Iterable[Assignment],
    submissions: dict,
    now: datetime,
    course_names: Optional[dict] = None,
) -> List[ResolvedAssignment]:
    """Resolve every assignment against the submission map (assignment id → submission)."""
    course_names = course_names or {}
    return [
        ResolvedAssignment(
            assignment=a,
            submission=submissions.get(a.id),
            resolution=resolve_status(a, submissions.get(a.id), now),
            course_name=course_names.get(a.course_id),
        )
        for a in assignments
    ]


# =============================================================================
# Prioritization
# =============================================================================

class PriorityLevel(str, Enum):
    """How soon a piece of work should be picked up."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [PriorityLevel.URGENT, PriorityLevel.HIGH, PriorityLevel.MEDIUM, PriorityLevel.LOW]


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# Undated work is treated as due a week out
DEFAULT_DUE_DAYS = 7

# Partial credit toward completion for work that has been started
DRAFT_COMPLETION = 25


@dataclass(frozen=True)
class AssignmentPriority:
    """Workload estimate for one assignment."""
    assignment_id: str
    level: PriorityLevel
    estimated_hours: float
    difficulty: Difficulty
    due_date: date
    points: float
    course_weight: float
    stress_level: int


def calculate_priority(
    assignment: Assignment,
    now: datetime,
    course_weight: float = 1.0,
) -> AssignmentPriority:
    """
    Estimate urgency, effort and stress for an assignment.

    Urgency comes from the days left (urgent when overdue or due within a
    day, high within 3, medium within 7, low beyond). Work worth more than
    20 points is bumped one level, up to high. Effort is an hour per 10
    points (at least half an hour, 1 hour when ungraded). Stress starts at
    5 and rises for overdue, next-day, high-point and hard work, clamped to
    1-10.
    """
    due = assignment.due_date or now.date() + timedelta(days=DEFAULT_DUE_DAYS)
    days_left = (due - now.date()).days
    points = assignment.max_points or 0

    estimated_hours = max(0.5, points / 10) if points else 1.0

    difficulty = Difficulty.MEDIUM
    if points and points <= 10:
        difficulty = Difficulty.EASY
    elif points >= 50:
        difficulty = Difficulty.HARD

    if days_left <= 1:
        level = PriorityLevel.URGENT
    elif days_left <= 3:
        level = PriorityLevel.HIGH
    elif days_left <= DEFAULT_DUE_DAYS:
        level = PriorityLevel.MEDIUM
    else:
        level = PriorityLevel.LOW

    if points > 20:
        if level == PriorityLevel.LOW:
            level = PriorityLevel.MEDIUM
        elif level == PriorityLevel.MEDIUM:
            level = PriorityLevel.HIGH

    stress = 5
    if days_left < 0:
        stress += 3
    if days_left <= 1:
        stress += 2
    if points > 30:
        stress += 1
    if difficulty == Difficulty.HARD:
        stress += 1

    return AssignmentPriority(
        assignment_id=assignment.id,
        level=level,
        estimated_hours=estimated_hours,
        difficulty=difficulty,
        due_date=due,
        points=points,
        course_weight=course_weight,
        stress_level=min(10, max(1, stress)),
    )


def completion_percentage(item: ResolvedAssignment) -> int:
    if item.resolution.is_completed:
        return 100
    if item.submission is not None and item.submission.state == SubmissionState.CREATED:
        return DRAFT_COMPLETION
    return 0


@dataclass
class PrioritizedAssignment:
    """A resolved assignment with its workload estimate."""
    item: ResolvedAssignment
    priority: AssignmentPriority
    days_until_due: int
    completion: int

    @property
    def is_overdue(self) -> bool:
        return self.days_until_due < 0

    @property
    def recommended_minutes(self) -> int:
        """Study time still needed, scaled down by the work already done."""
        return round(self.priority.estimated_hours * 60 * (1 - self.completion / 100))


def prioritize(
    items: Iterable[ResolvedAssignment],
    now: datetime,
    course_weights: Optional[Dict[str, float]] = None,
) -> List[PrioritizedAssignment]:
    """Estimate every live assignment. Deleted coursework is skipped."""
    course_weights = course_weights or {}
    prioritized = []
    for item in items:
        if item.status == ResolvedStatus.DELETED:
            continue
        priority = calculate_priority(item.assignment, now, course_weights.get(item.assignment.course_id, 1.0))
        prioritized.append(PrioritizedAssignment(
            item=item,
            priority=priority,
            days_until_due=(priority.due_date - now.date()).days,
            completion=completion_percentage(item),
        ))
    return prioritized


def sort_by_priority(prioritized: Iterable[PrioritizedAssignment]) -> List[PrioritizedAssignment]:
    """
    Most pressing first.

    Ordered by level, then days until due, then points (highest first),
    then completion (least done first).
    """
    return sorted(
        prioritized,
        key=lambda p: (p.priority.level.rank, p.days_until_due, -p.priority.points, p.completion),
    )


def get_study_recommendations(prioritized: Iterable[PrioritizedAssignment]) -> List[str]:
    """Suggested next steps for the work that is not finished yet."""
    open_work = sort_by_priority(p for p in prioritized if p.completion < 100)
    recommendations: List[str] = []

    urgent = [p for p in open_work if p.priority.level == PriorityLevel.URGENT]
    if urgent:
        first = urgent[0]
        recommendations.append(f"Start with: {first.item.assignment.title} ({first.priority.estimated_hours:g}h)")

    high = [p for p in open_work if p.priority.level == PriorityLevel.HIGH]
    if high:
        hours = sum(p.priority.estimated_hours for p in high)
        recommendations.append(f"Plan {hours:.1f} hours for high-priority assignments")

    study_hours = sum(p.recommended_minutes for p in open_work) / 60
    if study_hours > 0:
        recommendations.append(f"Total recommended study time: {study_hours:.1f} hours")

    return recommendations


# =============================================================================
# Analytics
# =============================================================================

@dataclass
class AssignmentAnalytics:
    """Aggregate counts and workload averages for one sync cycle."""
    total: int = 0
    completed: int = 0
    pending: int = 0
    overdue: int = 0
    due_soon: int = 0
    completion_percentage: float = 0.0
    average_estimated_hours: float = 0.0
    stress_level: int = 5
    recommended_actions: List[str] = field(default_factory=list)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_analytics(
    items: Iterable[ResolvedAssignment],
    now: datetime,
    due_soon_hours: float = 72,
) -> AssignmentAnalytics:
    """
    Count pending, overdue and due-soon work.

    Deleted coursework is ignored. Overdue means not completed and at least
    one full day past the due date; due soon means not completed and due
    within due_soon_hours. Estimated hours and stress are averaged over
    every counted assignment; stress is 5 when there is nothing to count.
    """
    analytics = AssignmentAnalytics()
    hours_total = 0.0
    stress_total = 0

    for item in items:
        if item.status == ResolvedStatus.DELETED:
            continue
        analytics.total += 1
        priority = calculate_priority(item.assignment, now)
        hours_total += priority.estimated_hours
        stress_total += priority.stress_level
        if item.resolution.is_completed:
            analytics.completed += 1
            continue

        due = item.assignment.due_date
        if item.status in (ResolvedStatus.MISSING, ResolvedStatus.NOT_ACCEPTING) or days_overdue(due, now) > 0:
            analytics.overdue += 1
        hours = hours_until_due(due, now)
        if hours is not None and 0 < hours <= due_soon_hours:
            analytics.due_soon += 1

    analytics.pending = analytics.total - analytics.completed
    average_stress = 5.0
    if analytics.total:
        analytics.completion_percentage = round(analytics.completed / analytics.total * 100, 1)
        analytics.average_estimated_hours = hours_total / analytics.total
        average_stress = stress_total / analytics.total
    analytics.stress_level = round(average_stress)

    if analytics.overdue:
        analytics.recommended_actions.append(
            f"Focus on {_plural(analytics.overdue, 'overdue assignment')} first"
        )
    if analytics.due_soon:
        analytics.recommended_actions.append(
            f"You have {_plural(analytics.due_soon, 'assignment')} due soon"
        )
    if average_stress > 7:
        analytics.recommended_actions.append("Consider breaking down large assignments into smaller tasks")
    if analytics.total and analytics.completed / analytics.total < 0.5:
        analytics.recommended_actions.append("Try to complete assignments earlier to reduce stress")

    return analytics
