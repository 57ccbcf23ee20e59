"""
Assignment Sync for Classroom Sync.

One sync cycle:
1. Fetch active courses (with teachers)
2. Fetch coursework for every course concurrently
3. Fetch the user's submission for every assignment concurrently
4. Resolve statuses, compute analytics and a priority plan, generate notifications

A failure for one course or one assignment is logged and degrades to
"no data" for that item. A failure fetching the course list propagates, and
so does any reconnect-required error raised during the fan-out.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..core.errors import ClassroomError
from .credentials import DEFAULT_PROVIDER, CredentialStore
from .google_classroom import ClassroomService
from .models import Assignment, Course, Submission
from .notifications import Notification, NotificationEngine
from .status import (
    AssignmentAnalytics,
    PrioritizedAssignment,
    ResolvedAssignment,
    build_analytics,
    get_study_recommendations,
    prioritize,
    resolve_all,
    sort_by_priority,
)


@dataclass
class SyncResult:
    """Everything one sync cycle produced."""
    courses: List[Course] = field(default_factory=list)
    items: List[ResolvedAssignment] = field(default_factory=list)
    analytics: AssignmentAnalytics = field(default_factory=AssignmentAnalytics)
    plan: List[PrioritizedAssignment] = field(default_factory=list)
    study_recommendations: List[str] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    failed_courses: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None

    def summary(self) -> str:
        return (
            f"{len(self.courses)} courses, {self.analytics.total} assignments "
            f"({self.analytics.pending} pending, {self.analytics.overdue} overdue), "
            f"{len(self.notifications)} new notifications"
        )


def _raise_reconnect(results) -> None:
    """Re-raise the first outcome that means the credential is gone."""
    for outcome in results:
        if isinstance(outcome, ClassroomError) and outcome.reconnect_required:
            raise outcome


class AssignmentSync:
    """
    Runs sync cycles for one user.

    Usage:
        sync = AssignmentSync(classroom, engine, credentials, user_id="u1")
        result = await sync.sync()
    """

    def __init__(
        self,
        classroom: ClassroomService,
        engine: NotificationEngine,
        credentials: CredentialStore,
        user_id: str,
        provider: str = DEFAULT_PROVIDER,
        clock: Optional[Callable[[], datetime]] = None,
        due_soon_hours: float = 72,
    ):
        self.classroom = classroom
        self.engine = engine
        self.credentials = credentials
        self.user_id = user_id
        self.provider = provider
        self.due_soon_hours = due_soon_hours
        self._clock = clock or datetime.now
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def sync(self) -> Optional[SyncResult]:
        """
        Run one sync cycle.

        Returns:
            SyncResult, or None if a cycle is already running
        """
        if self._in_progress:
            logger.info(f"Sync already in progress for {self.user_id}; skipping")
            return None

        self._in_progress = True
        try:
            return await self._run_cycle()
        finally:
            self._in_progress = False

    async def _run_cycle(self) -> SyncResult:
        result = SyncResult(started_at=self._clock())
        logger.info(f"Starting sync for {self.user_id}")

        result.courses = await self.classroom.list_courses()
        assignments, result.failed_courses = await self._fetch_coursework(result.courses)
        submissions = await self._fetch_submissions(assignments)

        now = self._clock()
        course_names = {course.id: course.name for course in result.courses}
        result.items = resolve_all(assignments, submissions, now, course_names)
        result.analytics = build_analytics(result.items, now, self.due_soon_hours)
        result.plan = sort_by_priority(prioritize(result.items, now))
        result.study_recommendations = get_study_recommendations(result.plan)
        result.notifications = await self.engine.process_cycle(result.items, result.analytics, now)

        logger.info(f"Sync finished for {self.user_id}: {result.summary()}")
        return result

    async def _fetch_coursework(self, courses: List[Course]) -> Tuple[List[Assignment], List[str]]:
        results = await asyncio.gather(
            *(self.classroom.list_coursework(course.id) for course in courses),
            return_exceptions=True,
        )
        _raise_reconnect(results)

        assignments: List[Assignment] = []
        failed: List[str] = []
        for course, outcome in zip(courses, results):
            if isinstance(outcome, Exception):
                logger.error(f"Error fetching coursework for course {course.id}: {outcome}")
                failed.append(course.id)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            assignments.extend(outcome)
        return assignments, failed

    async def _fetch_submissions(self, assignments: List[Assignment]) -> Dict[str, Submission]:
        results = await asyncio.gather(
            *(self.classroom.get_submission(a.course_id, a.id) for a in assignments),
            return_exceptions=True,
        )
        _raise_reconnect(results)

        submissions: Dict[str, Submission] = {}
        for assignment, outcome in zip(assignments, results):
            if isinstance(outcome, Exception):
                logger.error(f"Error fetching submission for assignment {assignment.id}: {outcome}")
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is not None:
                submissions[assignment.id] = outcome
        return submissions

    def disconnect(self) -> bool:
        """Forget the stored credential. Safe to call repeatedly."""
        removed = self.credentials.clear(self.user_id, self.provider)
        logger.info(f"Disconnected {self.user_id} from {self.provider}")
        return removed
