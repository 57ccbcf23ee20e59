"""
Unit tests for the notification engine.

Tests:
- Priority rules for deadline, overdue, grade and study notifications
- Deduplication by semantic id
- Quiet hours
- Best-effort alert delivery
- Persistence of the log, settings and observed grades
"""

import sys
from datetime import date, datetime
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from classroom_sync.classroom.models import Assignment, Submission, SubmissionState
from classroom_sync.classroom.notifications import (
    NotificationEngine,
    NotificationType,
    build_deadline_notification,
    build_grade_notification,
    build_overdue_notification,
    build_study_summary,
    deadline_priority,
    grade_priority,
    is_in_quiet_hours,
)
from classroom_sync.classroom.sinks import MemorySink, NotificationPriority, NotificationSink, NtfySink
from classroom_sync.classroom.status import AssignmentAnalytics, build_analytics, resolve_all
from classroom_sync.core.config import NotificationSettings, NtfyConfig, QuietHoursConfig
from classroom_sync.core.storage import MemoryKeyValueStore

NOW = datetime(2024, 1, 8, 12, 0)


class FailingSink(NotificationSink):
    async def show(self, title, body, urgency):
        raise RuntimeError("permission revoked")


def make_assignment(**overrides) -> Assignment:
    fields = dict(id="a1", course_id="c1", title="Essay", due_date=date(2024, 1, 10), max_points=100)
    fields.update(overrides)
    return Assignment(**fields)


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def engine(store, sink):
    engine = NotificationEngine(store, "u1", sink=sink, clock=lambda: NOW)
    engine.init()
    yield engine
    engine.dispose()


class TestPriorityRules:
    """Tests for the pure priority functions."""

    def test_deadline_priority(self):
        assert deadline_priority(0.5) == NotificationPriority.URGENT
        assert deadline_priority(1) == NotificationPriority.URGENT
        assert deadline_priority(12) == NotificationPriority.HIGH
        assert deadline_priority(24) == NotificationPriority.HIGH
        assert deadline_priority(48) == NotificationPriority.MEDIUM
        assert deadline_priority(100) == NotificationPriority.LOW

    def test_grade_priority(self):
        assert grade_priority(95) == NotificationPriority.LOW
        assert grade_priority(85) == NotificationPriority.MEDIUM
        assert grade_priority(75) == NotificationPriority.HIGH
        assert grade_priority(40) == NotificationPriority.URGENT

    def test_grade_without_max_points(self):
        notification = build_grade_notification(make_assignment(max_points=0), 8, 0, NOW)
        assert notification.priority == NotificationPriority.MEDIUM

    def test_study_summary_priority(self):
        assert build_study_summary(3, 1, 0, NOW).priority == NotificationPriority.URGENT
        assert build_study_summary(3, 0, 2, NOW).priority == NotificationPriority.HIGH
        assert build_study_summary(3, 0, 0, NOW).priority == NotificationPriority.MEDIUM
        assert build_study_summary(0, 0, 0, NOW).priority == NotificationPriority.LOW

    def test_semantic_ids(self):
        assignment = make_assignment()
        assert build_deadline_notification(assignment, 48, NOW).id == "deadline:a1:medium"
        assert build_overdue_notification(assignment, 2, NOW).id == "overdue:a1:2024-01-10"
        assert build_grade_notification(assignment, 87.5, 100, NOW).id == "grade:a1:87.5"
        assert build_study_summary(1, 2, 3, NOW).id == "study:2024-01-08:1:2:3"

    def test_overdue_days_capped(self):
        notification = build_overdue_notification(make_assignment(), 5000, NOW)
        assert "365 days overdue" in notification.message

    def test_overdue_posted_suffix(self):
        posted = build_overdue_notification(make_assignment(), 1, NOW, age_days=1)
        assert posted.message.endswith("(Posted 1 day ago)")
        assert "Posted" not in build_overdue_notification(make_assignment(), 1, NOW, age_days=0).message
        assert "Posted" not in build_overdue_notification(make_assignment(), 1, NOW).message


class TestQuietHours:
    """Tests for is_in_quiet_hours."""

    def test_disabled(self):
        assert not is_in_quiet_hours(QuietHoursConfig(enabled=False), datetime(2024, 1, 1, 23))

    def test_window_across_midnight(self):
        quiet = QuietHoursConfig(enabled=True, start="22:00", end="08:00")
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 22, 0))
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 3, 30))
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 8, 0))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 8, 1))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 12, 0))

    def test_daytime_window(self):
        quiet = QuietHoursConfig(enabled=True, start="13:00", end="14:30")
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 14, 0))
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 14, 30))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 14, 31))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 12, 59))

    def test_equal_bounds_is_one_minute(self):
        quiet = QuietHoursConfig(enabled=True, start="09:00", end="09:00")
        assert is_in_quiet_hours(quiet, datetime(2024, 1, 1, 9, 0, 45))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 9, 1))
        assert not is_in_quiet_hours(quiet, datetime(2024, 1, 1, 8, 59))

    def test_invalid_time_rejected(self):
        with pytest.raises(ValueError):
            QuietHoursConfig(start="25:00")


class TestScenarios:
    """End-to-end cycles through resolve, analytics and notify."""

    @pytest.mark.asyncio
    async def test_not_started_due_in_two_days(self, engine, sink):
        now = datetime(2024, 1, 8)
        assignment = make_assignment(due_date=date(2024, 1, 10))
        items = resolve_all([assignment], {}, now)

        created = await engine.process_cycle(items, build_analytics(items, now), now)

        deadline = [n for n in created if n.type == NotificationType.DEADLINE]
        assert len(deadline) == 1
        assert deadline[0].priority == NotificationPriority.MEDIUM
        assert deadline[0].action_required
        assert any(n.type == NotificationType.STUDY for n in created)

    @pytest.mark.asyncio
    async def test_missing_four_days(self, engine):
        now = datetime(2024, 1, 5)
        assignment = make_assignment(due_date=date(2024, 1, 1))
        submission = Submission(id="s1", assignment_id="a1", state=SubmissionState.CREATED, late=True)
        items = resolve_all([assignment], {"a1": submission}, now)

        created = await engine.process_cycle(items, build_analytics(items, now), now)

        overdue = [n for n in created if n.type == NotificationType.OVERDUE]
        assert len(overdue) == 1
        assert overdue[0].priority == NotificationPriority.URGENT
        assert "4 days overdue" in overdue[0].message
        assert "Posted" not in overdue[0].message

    @pytest.mark.asyncio
    async def test_missing_message_says_when_posted(self, engine):
        now = datetime(2024, 1, 5)
        assignment = make_assignment(due_date=date(2024, 1, 1), creation_time=datetime(2023, 12, 20, 9, 0))
        items = resolve_all([assignment], {"a1": Submission(id="s1", assignment_id="a1", state=SubmissionState.CREATED, late=True)}, now)

        created = await engine.process_cycle(items, build_analytics(items, now), now)

        overdue = [n for n in created if n.type == NotificationType.OVERDUE][0]
        assert overdue.message.endswith("(Posted 15 days ago)")

    @pytest.mark.asyncio
    async def test_second_cycle_adds_nothing(self, engine):
        items = resolve_all([make_assignment()], {}, NOW)
        analytics = build_analytics(items, NOW)

        first = await engine.process_cycle(items, analytics, NOW)
        second = await engine.process_cycle(items, analytics, NOW)

        assert first
        assert second == []


class TestGradeDedup:
    """Grade notifications fire once per observed grade value."""

    @pytest.mark.asyncio
    async def test_same_grade_once(self, engine):
        assignment = make_assignment()
        first = await engine.notify_grade(assignment, 85, 100)
        second = await engine.notify_grade(assignment, 85, 100)

        assert first is not None
        assert second is None
        assert len([n for n in engine.get_notifications() if n.type == NotificationType.GRADE]) == 1

    @pytest.mark.asyncio
    async def test_same_grade_after_dismiss_stays_quiet(self, engine):
        assignment = make_assignment()
        first = await engine.notify_grade(assignment, 85, 100)
        engine.dismiss(first.id)

        assert await engine.notify_grade(assignment, 85, 100) is None

    @pytest.mark.asyncio
    async def test_changed_grade_notifies_again(self, engine):
        assignment = make_assignment()
        await engine.notify_grade(assignment, 60, 100)
        regraded = await engine.notify_grade(assignment, 92, 100)

        assert regraded is not None
        assert regraded.priority == NotificationPriority.LOW

    @pytest.mark.asyncio
    async def test_large_grades_are_distinct(self, engine):
        assignment = make_assignment(max_points=2000000)
        first = await engine.notify_grade(assignment, 1234567, 2000000)
        second = await engine.notify_grade(assignment, 1234568, 2000000)

        assert first.id == "grade:a1:1234567"
        assert second is not None
        assert second.id == "grade:a1:1234568"
        assert "1234568/2000000" in second.message

    @pytest.mark.asyncio
    async def test_observed_grades_survive_restart(self, store):
        assignment = make_assignment()
        with NotificationEngine(store, "u1", clock=lambda: NOW) as engine:
            await engine.notify_grade(assignment, 70, 100)

        with NotificationEngine(store, "u1", clock=lambda: NOW) as engine:
            assert await engine.notify_grade(assignment, 70, 100) is None


class TestDelivery:
    """Tests for sink delivery."""

    @pytest.mark.asyncio
    async def test_alert_shown(self, engine, sink):
        await engine.add_custom_reminder("Read", "Chapter 4", reminder_id="r1")
        assert sink.shown == [("Read", "Chapter 4", NotificationPriority.MEDIUM)]

    @pytest.mark.asyncio
    async def test_quiet_hours_record_but_do_not_alert(self, store, sink):
        night = datetime(2024, 1, 8, 23, 0)
        settings = NotificationSettings(quiet_hours=QuietHoursConfig(enabled=True))
        with NotificationEngine(store, "u1", settings=settings, sink=sink, clock=lambda: night) as engine:
            created = await engine.add_custom_reminder("Read", "Chapter 4", reminder_id="r1")

            assert created is not None
            assert engine.get_unread_count() == 1
            assert sink.shown == []

    @pytest.mark.asyncio
    async def test_unavailable_sink_skipped(self, store):
        sink = MemorySink(enabled=False)
        with NotificationEngine(store, "u1", sink=sink, clock=lambda: NOW) as engine:
            await engine.add_custom_reminder("Read", "Chapter 4", reminder_id="r1")
            assert engine.get_unread_count() == 1
        assert sink.shown == []

    @pytest.mark.asyncio
    async def test_sink_failure_keeps_notification(self, store):
        with NotificationEngine(store, "u1", sink=FailingSink(), clock=lambda: NOW) as engine:
            created = await engine.add_custom_reminder("Read", "Chapter 4", reminder_id="r1")
            assert created is not None
            assert len(engine.get_notifications()) == 1

    @pytest.mark.asyncio
    async def test_ntfy_sink_posts(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "x"})

        sink = NtfySink(
            NtfyConfig(enabled=True, server_url="https://ntfy.test", topic="class-u1"),
            transport=httpx.MockTransport(handler),
        )
        await sink.show("Grade Posted", "You scored 9/10", NotificationPriority.URGENT)
        await sink.close()

        assert str(requests[0].url) == "https://ntfy.test/class-u1"
        assert requests[0].headers["Priority"] == "5"
        assert requests[0].content == b"You scored 9/10"


class TestLog:
    """Tests for the notification log."""

    @pytest.mark.asyncio
    async def test_counts_and_read_state(self, engine):
        await engine.add_custom_reminder("A", "a", NotificationPriority.URGENT, reminder_id="r1")
        await engine.add_custom_reminder("B", "b", reminder_id="r2")

        assert engine.get_unread_count() == 2
        assert engine.get_urgent_count() == 1

        assert engine.mark_as_read("r1")
        assert engine.get_unread_count() == 1
        assert not engine.mark_as_read("missing")

    @pytest.mark.asyncio
    async def test_newest_first_and_limit(self, engine):
        for i in range(3):
            await engine.add_custom_reminder(f"T{i}", "m", reminder_id=f"r{i}")

        notifications = engine.get_notifications(limit=2)
        assert [n.id for n in notifications] == ["r2", "r1"]

    @pytest.mark.asyncio
    async def test_dismiss_and_clear(self, engine):
        await engine.add_custom_reminder("A", "a", reminder_id="r1")
        await engine.add_custom_reminder("B", "b", reminder_id="r2")

        assert engine.dismiss("r1")
        assert [n.id for n in engine.get_notifications()] == ["r2"]
        assert engine.clear_all() == 1
        assert engine.get_notifications() == []

    @pytest.mark.asyncio
    async def test_dismissed_id_can_be_added_again(self, engine):
        await engine.add_custom_reminder("A", "a", reminder_id="r1")
        engine.dismiss("r1")

        assert await engine.add_custom_reminder("A", "a", reminder_id="r1") is not None
        assert len(engine.get_notifications()) == 1

    @pytest.mark.asyncio
    async def test_log_persists(self, store):
        with NotificationEngine(store, "u1", clock=lambda: NOW) as engine:
            await engine.add_custom_reminder("A", "a", reminder_id="r1")

        with NotificationEngine(store, "u1", clock=lambda: NOW) as engine:
            restored = engine.get_notifications()
            assert [n.id for n in restored] == ["r1"]
            assert restored[0].created_at == NOW

    def test_use_before_init_raises(self, store):
        engine = NotificationEngine(store, "u1")
        with pytest.raises(RuntimeError):
            engine.get_notifications()


class TestSettings:
    """Tests for settings updates."""

    @pytest.mark.asyncio
    async def test_disabled_deadline_reminders(self, engine):
        engine.update_settings({"deadline_reminders": {"enabled": False}})
        items = resolve_all([make_assignment()], {}, NOW)

        created = await engine.process_cycle(items, AssignmentAnalytics(), NOW)

        assert all(n.type != NotificationType.DEADLINE for n in created)

    def test_partial_update_keeps_other_fields(self, engine):
        settings = engine.update_settings({"quiet_hours": {"enabled": True, "start": "21:30"}})

        assert settings.quiet_hours.enabled
        assert settings.quiet_hours.start == "21:30"
        assert settings.quiet_hours.end == "08:00"
        assert settings.grade_notifications.enabled

    def test_settings_persist(self, store):
        with NotificationEngine(store, "u1") as engine:
            engine.update_settings({"study_summary": {"enabled": False}})

        with NotificationEngine(store, "u1") as engine:
            assert not engine.get_settings().study_summary.enabled
