"""
Notification Engine for Classroom Sync.

Turns resolved assignment statuses into notifications:
- Deadline reminders (escalating priority as the due date approaches)
- Overdue alerts for missing work
- Grade notifications (once per observed grade value)
- A study-status summary per sync cycle
- Custom reminders

Every notification carries a semantic id; a notification whose id is already
in the undismissed log is not added again. The log, the settings and the
last observed grade per assignment are persisted in a KeyValueStore.

Usage:
    engine = NotificationEngine(store, user_id="u1", sink=NtfySink(cfg))
    engine.init()
    created = await engine.process_cycle(resolved, analytics)
    engine.get_notifications(limit=20)
    engine.dispose()
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from loguru import logger

from ..core.config import NotificationSettings, QuietHoursConfig
from ..core.storage import KeyValueStore
from .models import Assignment
from .sinks import NotificationPriority, NotificationSink
from .status import (
    TERMINAL_STATUSES,
    AssignmentAnalytics,
    ResolvedAssignment,
    ResolvedStatus,
    assignment_age_days,
    build_analytics,
    days_overdue,
    hours_until_due,
)

MAX_OVERDUE_DAYS = 365


class NotificationType(str, Enum):
    """Notification categories."""
    DEADLINE = "deadline"
    OVERDUE = "overdue"
    GRADE = "grade"
    STUDY = "study"
    REMINDER = "reminder"


@dataclass
class Notification:
    """A persisted notification."""
    id: str
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    created_at: datetime
    action_required: bool = False
    assignment_id: Optional[str] = None
    course_id: Optional[str] = None
    due_date: Optional[date] = None
    read: bool = False
    dismissed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "priority": self.priority.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "action_required": self.action_required,
            "assignment_id": self.assignment_id,
            "course_id": self.course_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "read": self.read,
            "dismissed": self.dismissed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            type=NotificationType(data["type"]),
            priority=NotificationPriority(data["priority"]),
            title=data.get("title", ""),
            message=data.get("message", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            action_required=data.get("action_required", False),
            assignment_id=data.get("assignment_id"),
            course_id=data.get("course_id"),
            due_date=date.fromisoformat(data["due_date"]) if data.get("due_date") else None,
            read=data.get("read", False),
            dismissed=data.get("dismissed", False),
        )

    def __str__(self) -> str:
        marker = "" if self.read else "* "
        return f"{marker}[{self.priority.value}] {self.title}: {self.message}"


# =============================================================================
# Priority rules
# =============================================================================

def deadline_priority(hours: float) -> NotificationPriority:
    if hours <= 1:
        return NotificationPriority.URGENT
    if hours <= 24:
        return NotificationPriority.HIGH
    if hours <= 72:
        return NotificationPriority.MEDIUM
    return NotificationPriority.LOW


def grade_priority(percentage: float) -> NotificationPriority:
    if percentage >= 90:
        return NotificationPriority.LOW
    if percentage >= 80:
        return NotificationPriority.MEDIUM
    if percentage >= 70:
        return NotificationPriority.HIGH
    return NotificationPriority.URGENT


def study_priority(pending: int, overdue: int, due_soon: int) -> NotificationPriority:
    if overdue > 0:
        return NotificationPriority.URGENT
    if due_soon > 0:
        return NotificationPriority.HIGH
    if pending > 0:
        return NotificationPriority.MEDIUM
    return NotificationPriority.LOW


def _minutes(clock_time: str) -> int:
    hours, minutes = clock_time.split(":")
    return int(hours) * 60 + int(minutes)


def is_in_quiet_hours(quiet_hours: QuietHoursConfig, now: datetime) -> bool:
    """
    Whether now falls inside the quiet window [start, end].

    Both bounds are whole minutes and both are inclusive, so 22:00-08:00 is
    still quiet at 08:00 and 07:30-07:30 is quiet for that one minute. The
    window may span midnight.
    """
    if not quiet_hours.enabled:
        return False

    current = now.hour * 60 + now.minute
    start = _minutes(quiet_hours.start)
    end = _minutes(quiet_hours.end)

    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _format_number(value: float) -> str:
    return f"{value:.10g}"


# =============================================================================
# Builders
# =============================================================================

def build_deadline_notification(
    assignment: Assignment,
    hours: float,
    now: datetime,
) -> Notification:
    priority = deadline_priority(hours)
    title = assignment.title

    if priority == NotificationPriority.URGENT:
        whole_hours = max(1, round(hours))
        message = f'URGENT: "{title}" is due in {_plural(whole_hours, "hour")}!'
    elif priority == NotificationPriority.HIGH:
        message = f'"{title}" is due tomorrow!'
    else:
        days = -(-hours // 24)  # ceil
        message = f'"{title}" is due in {_plural(int(days), "day")}'

    return Notification(
        id=f"deadline:{assignment.id}:{priority.value}",
        type=NotificationType.DEADLINE,
        priority=priority,
        title="Assignment Due Soon",
        message=message,
        created_at=now,
        action_required=True,
        assignment_id=assignment.id,
        course_id=assignment.course_id,
        due_date=assignment.due_date,
    )


def build_overdue_notification(
    assignment: Assignment,
    overdue_days: int,
    now: datetime,
    age_days: Optional[int] = None,
) -> Notification:
    overdue_days = max(0, min(overdue_days, MAX_OVERDUE_DAYS))
    title = assignment.title

    if overdue_days == 0:
        message = f'"{title}" is overdue! Submit as soon as possible.'
    else:
        message = f'"{title}" is {_plural(overdue_days, "day")} overdue! Submit as soon as possible.'

    if age_days is not None and age_days > 0:
        message += f" (Posted {_plural(age_days, 'day')} ago)"

    due_key = assignment.due_date.isoformat() if assignment.due_date else "none"
    return Notification(
        id=f"overdue:{assignment.id}:{due_key}",
        type=NotificationType.OVERDUE,
        priority=NotificationPriority.URGENT,
        title="Assignment Overdue",
        message=message,
        created_at=now,
        action_required=True,
        assignment_id=assignment.id,
        course_id=assignment.course_id,
        due_date=assignment.due_date,
    )


def build_grade_notification(
    assignment: Assignment,
    grade: float,
    max_points: float,
    now: datetime,
) -> Notification:
    title = assignment.title
    score = f"{_format_number(grade)}/{_format_number(max_points)}"

    if max_points > 0:
        percentage = grade / max_points * 100
        priority = grade_priority(percentage)
        result = f"{score} ({percentage:.1f}%)"
        if priority == NotificationPriority.LOW:
            message = f'Excellent work on "{title}"! You scored {result}'
        elif priority == NotificationPriority.MEDIUM:
            message = f'Good job on "{title}"! You scored {result}'
        elif priority == NotificationPriority.HIGH:
            message = f'You scored {result} on "{title}". Consider reviewing the material.'
        else:
            message = f'You scored {result} on "{title}". Consider seeking help or reviewing the material.'
    else:
        priority = NotificationPriority.MEDIUM
        message = f'"{title}" was graded: {_format_number(grade)} points'

    return Notification(
        id=f"grade:{assignment.id}:{_format_number(grade)}",
        type=NotificationType.GRADE,
        priority=priority,
        title="Grade Posted",
        message=message,
        created_at=now,
        assignment_id=assignment.id,
        course_id=assignment.course_id,
    )


def build_study_summary(
    pending: int,
    overdue: int,
    due_soon: int,
    now: datetime,
) -> Notification:
    priority = study_priority(pending, overdue, due_soon)

    if overdue > 0:
        message = f"You have {_plural(overdue, 'overdue assignment')} that need immediate attention!"
    elif due_soon > 0:
        message = f"You have {_plural(due_soon, 'assignment')} due within 3 days. Plan your study time!"
    elif pending > 0:
        message = f"You have {_plural(pending, 'pending assignment')}. Stay on track!"
    else:
        message = "All assignments are up to date. Great job!"

    return Notification(
        id=f"study:{now.date().isoformat()}:{pending}:{overdue}:{due_soon}",
        type=NotificationType.STUDY,
        priority=priority,
        title="Study Status Update",
        message=message,
        created_at=now,
    )


# =============================================================================
# Engine
# =============================================================================

class NotificationEngine:
    """
    Per-user notification log with generation rules.

    Lifecycle is explicit: construct with the store and collaborators, call
    init() to load persisted state, use, then dispose() to persist and
    release. Also usable as a context manager.
    """

    def __init__(
        self,
        store: KeyValueStore,
        user_id: str,
        settings: Optional[NotificationSettings] = None,
        sink: Optional[NotificationSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_log_size: int = 500,
    ):
        """
        Args:
            store: Persistence for the log, settings and observed grades
            user_id: Owner of the notification log
            settings: Defaults used when nothing is persisted yet
            sink: Optional alert capability (best-effort)
            clock: Returns the current time
            max_log_size: Oldest entries beyond this are dropped
        """
        self.store = store
        self.user_id = user_id
        self.sink = sink
        self.max_log_size = max_log_size
        self._clock = clock or datetime.now
        self._default_settings = settings or NotificationSettings()
        self._settings = self._default_settings
        self._notifications: List[Notification] = []
        self._observed_grades: Dict[str, str] = {}
        self._ready = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def _log_key(self) -> str:
        return f"notifications:{self.user_id}"

    @property
    def _settings_key(self) -> str:
        return f"notification_settings:{self.user_id}"

    @property
    def _grades_key(self) -> str:
        return f"notification_grades:{self.user_id}"

    def init(self) -> "NotificationEngine":
        """Load persisted settings, log and observed grades."""
        saved_settings = self.store.get_json(self._settings_key)
        if saved_settings:
            merged = _deep_merge(self._default_settings.model_dump(), saved_settings)
            self._settings = NotificationSettings.model_validate(merged)

        self._notifications = []
        for raw in self.store.get_json(self._log_key, default=[]) or []:
            try:
                self._notifications.append(Notification.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping unreadable notification record: {e}")

        self._observed_grades = dict(self.store.get_json(self._grades_key, default={}) or {})
        self._ready = True
        logger.debug(f"Notification engine ready for {self.user_id}: {len(self._notifications)} stored")
        return self

    def dispose(self) -> None:
        """Persist state and release it. Safe to call twice."""
        if not self._ready:
            return
        self._save()
        self._notifications = []
        self._observed_grades = {}
        self._ready = False

    def __enter__(self) -> "NotificationEngine":
        return self.init()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.dispose()
        return False

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise RuntimeError("NotificationEngine.init() must be called before use")

    def _save(self) -> None:
        self.store.set_json(self._log_key, [n.to_dict() for n in self._notifications])
        self.store.set_json(self._grades_key, self._observed_grades)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def get_settings(self) -> NotificationSettings:
        return self._settings.model_copy(deep=True)

    def update_settings(self, changes: Dict[str, Any]) -> NotificationSettings:
        """Merge a partial settings dict into the current settings and persist."""
        merged = _deep_merge(self._settings.model_dump(), changes)
        self._settings = NotificationSettings.model_validate(merged)
        self.store.set_json(self._settings_key, self._settings.model_dump())
        return self.get_settings()

    def is_quiet_time(self, now: Optional[datetime] = None) -> bool:
        return is_in_quiet_hours(self._settings.quiet_hours, now or self._clock())

    # -------------------------------------------------------------------------
    # Log
    # -------------------------------------------------------------------------

    def _find(self, notification_id: str) -> Optional[Notification]:
        for notification in self._notifications:
            if notification.id == notification_id:
                return notification
        return None

    def has_active(self, notification_id: str) -> bool:
        """Whether an undismissed notification with this id exists."""
        return any(n.id == notification_id and not n.dismissed for n in self._notifications)

    async def add_notification(self, notification: Notification) -> bool:
        """
        Record a notification and attempt a best-effort alert.

        Returns:
            False if an undismissed notification with the same id exists
        """
        self._ensure_ready()
        if self.has_active(notification.id):
            logger.debug(f"Duplicate notification skipped: {notification.id}")
            return False

        # A dismissed entry with the same id is replaced by the new one
        self._notifications = [n for n in self._notifications if n.id != notification.id]
        self._notifications.insert(0, notification)
        del self._notifications[self.max_log_size:]
        self._save()

        await self._deliver(notification)
        return True

    async def _deliver(self, notification: Notification) -> bool:
        if self.sink is None or not self.sink.available:
            return False
        if self.is_quiet_time():
            logger.debug(f"Quiet hours: alert suppressed for {notification.id}")
            return False
        try:
            result = self.sink.show(notification.title, notification.message, notification.priority)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Alert delivery failed for {notification.id}: {e}")
            return False
        return True

    def get_notifications(self, limit: Optional[int] = None) -> List[Notification]:
        """Undismissed notifications, newest first."""
        self._ensure_ready()
        active = [n for n in self._notifications if not n.dismissed]
        return active[:limit] if limit else active

    def get_unread_count(self) -> int:
        self._ensure_ready()
        return sum(1 for n in self._notifications if not n.read and not n.dismissed)

    def get_urgent_count(self) -> int:
        self._ensure_ready()
        return sum(
            1 for n in self._notifications
            if n.priority == NotificationPriority.URGENT and not n.dismissed
        )

    def mark_as_read(self, notification_id: str) -> bool:
        self._ensure_ready()
        notification = self._find(notification_id)
        if notification is None:
            return False
        notification.read = True
        self._save()
        return True

    def dismiss(self, notification_id: str) -> bool:
        self._ensure_ready()
        notification = self._find(notification_id)
        if notification is None:
            return False
        notification.dismissed = True
        self._save()
        return True

    def clear_all(self) -> int:
        """Dismiss every notification. Returns how many were active."""
        self._ensure_ready()
        count = 0
        for notification in self._notifications:
            if not notification.dismissed:
                notification.dismissed = True
                count += 1
        self._save()
        return count

    # -------------------------------------------------------------------------
    # Generators
    # -------------------------------------------------------------------------

    async def notify_deadline(
        self,
        item: ResolvedAssignment,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """Deadline reminder when the due date is within the reminder window."""
        now = now or self._clock()
        reminders = self._settings.deadline_reminders
        if not reminders.enabled:
            return None
        if item.status in TERMINAL_STATUSES or item.status == ResolvedStatus.DELETED:
            return None

        hours = hours_until_due(item.assignment.due_date, now)
        if hours is None or not 0 < hours <= reminders.window_hours:
            return None

        notification = build_deadline_notification(item.assignment, hours, now)
        return notification if await self.add_notification(notification) else None

    async def notify_overdue(
        self,
        item: ResolvedAssignment,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """Overdue alert for missing work at least one day past due."""
        now = now or self._clock()
        if item.status != ResolvedStatus.MISSING:
            return None

        overdue = days_overdue(item.assignment.due_date, now)
        if overdue <= 0:
            return None

        notification = build_overdue_notification(
            item.assignment,
            overdue,
            now,
            age_days=assignment_age_days(item.assignment, now),
        )
        return notification if await self.add_notification(notification) else None

    async def notify_grade(
        self,
        assignment: Assignment,
        grade: float,
        max_points: float,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """Grade notification, once per newly observed grade value."""
        self._ensure_ready()
        now = now or self._clock()
        if not self._settings.grade_notifications.enabled:
            return None

        observed = _format_number(grade)
        if self._observed_grades.get(assignment.id) == observed:
            return None
        self._observed_grades[assignment.id] = observed

        notification = build_grade_notification(assignment, grade, max_points, now)
        if await self.add_notification(notification):
            return notification
        self._save()
        return None

    async def notify_study_summary(
        self,
        analytics: AssignmentAnalytics,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        now = now or self._clock()
        if not self._settings.study_summary.enabled:
            return None
        notification = build_study_summary(analytics.pending, analytics.overdue, analytics.due_soon, now)
        return notification if await self.add_notification(notification) else None

    async def add_custom_reminder(
        self,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        reminder_id: Optional[str] = None,
    ) -> Optional[Notification]:
        now = self._clock()
        notification = Notification(
            id=reminder_id or f"reminder:{now.isoformat()}",
            type=NotificationType.REMINDER,
            priority=priority,
            title=title,
            message=message,
            created_at=now,
        )
        return notification if await self.add_notification(notification) else None

    async def process_cycle(
        self,
        items: Iterable[ResolvedAssignment],
        analytics: Optional[AssignmentAnalytics] = None,
        now: Optional[datetime] = None,
    ) -> List[Notification]:
        """
        Run every generator over one cycle's resolved assignments.

        Called once all statuses of the cycle are resolved, so the summary
        counts match the per-assignment notifications.
        Analytics are computed from items when not given.

        Returns:
            Notifications created in this cycle
        """
        self._ensure_ready()
        now = now or self._clock()
        items = list(items)
        if analytics is None:
            analytics = build_analytics(items, now, self._settings.study_summary.due_soon_hours)
        created: List[Notification] = []

        for item in items:
            for result in (
                await self.notify_deadline(item, now),
                await self.notify_overdue(item, now),
            ):
                if result:
                    created.append(result)

            if item.status == ResolvedStatus.GRADED and item.resolution.grade is not None:
                graded = await self.notify_grade(item.assignment, item.resolution.grade, item.max_points, now)
                if graded:
                    created.append(graded)

        summary = await self.notify_study_summary(analytics, now)
        if summary:
            created.append(summary)

        logger.info(f"Notification cycle for {self.user_id}: {len(created)} new")
        return created


def _deep_merge(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
