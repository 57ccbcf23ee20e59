"""
Google Classroom Integration for Classroom Sync.

Provides typed access to:
- Courses (active courses with their teachers)
- Coursework (published assignments per course)
- Submissions (the user's own submission per assignment)
- Joining a course, attaching work and turning it in
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger

from ..core.cache import CacheCategory, TTLCache
from ..core.errors import ApiError, Forbidden
from .client import ResilientApiClient
from .google_drive import DriveService
from .models import Assignment, Course, Submission, Teacher, parse_records


@dataclass
class SubmissionResult:
    """Outcome of submitting a file for an assignment."""
    file_id: str
    file_link: Optional[str]
    turned_in: bool
    message: str


class ClassroomService:
    """
    Google Classroom v1 fetchers on top of the resilient client.

    Usage:
        classroom = ClassroomService(api_client)
        courses = await classroom.list_courses()
        work = await classroom.list_coursework(courses[0].id)
    """

    DEFAULT_BASE_URL = "https://classroom.googleapis.com/v1"

    def __init__(
        self,
        client: ResilientApiClient,
        base_url: Optional[str] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.client = client
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.cache = cache

    def _class_key(self, include_teachers: bool) -> str:
        suffix = "full" if include_teachers else "bare"
        return f"classes:{self.client.user_id}:{suffix}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # =========================================================================
    # Courses
    # =========================================================================

    async def list_teachers(self, course_id: str) -> List[Teacher]:
        items = await self.client.get_list(self._url(f"courses/{course_id}/teachers"), "teachers")
        return parse_records(items, Teacher.from_api, "teacher")

    async def list_courses(self, include_teachers: bool = True, force_refresh: bool = False) -> List[Course]:
        """
        Get active courses.

        Teachers are fetched concurrently per course; a course whose teacher
        list cannot be loaded is returned without teachers. With a cache the
        class list is served from it until its TTL runs out.

        Args:
            include_teachers: Also load each course's teachers
            force_refresh: Skip the cached class list
        """
        if self.cache is None:
            return await self._load_courses(include_teachers)

        key = self._class_key(include_teachers)
        if force_refresh:
            self.cache.invalidate(key)
        courses = await self.cache.get_or_fetch_category(
            key, CacheCategory.CLASS_LIST, lambda: self._load_courses(include_teachers)
        )
        return list(courses)

    async def _load_courses(self, include_teachers: bool) -> List[Course]:
        items = await self.client.get_list(self._url("courses"), "courses", params={"courseStates": "ACTIVE"})
        courses = parse_records(items, Course.from_api, "course")

        if include_teachers and courses:
            results = await asyncio.gather(
                *(self.list_teachers(course.id) for course in courses),
                return_exceptions=True,
            )
            for course, result in zip(courses, results):
                if isinstance(result, Exception):
                    logger.error(f"Error fetching teachers for course {course.id}: {result}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                course.teachers = result

        logger.info(f"Loaded {len(courses)} Classroom courses")
        return courses

    async def join_course(self, course_id: str, enrollment_code: str) -> Dict[str, Any]:
        """Enroll the current user in a course with its enrollment code."""
        data = await self.client.request(
            "POST",
            self._url(f"courses/{course_id}/students"),
            params={"enrollmentCode": enrollment_code},
            json={"userId": "me"},
        )
        if self.cache is not None:
            self.cache.invalidate_prefix(f"classes:{self.client.user_id}:")
        logger.info(f"Joined course {course_id}")
        return data

    # =========================================================================
    # Coursework
    # =========================================================================

    async def list_coursework(self, course_id: str) -> List[Assignment]:
        """Get published coursework for a course."""
        items = await self.client.get_list(
            self._url(f"courses/{course_id}/courseWork"),
            "courseWork",
            params={"courseWorkStates": "PUBLISHED"},
        )
        return parse_records(items, Assignment.from_api, "assignment")

    # =========================================================================
    # Submissions
    # =========================================================================

    async def list_submissions(
        self,
        course_id: str,
        assignment_id: str,
        user_id: str = "me",
    ) -> List[Submission]:
        items = await self.client.get_list(
            self._url(f"courses/{course_id}/courseWork/{assignment_id}/studentSubmissions"),
            "studentSubmissions",
            params={"userId": user_id},
        )
        return parse_records(items, Submission.from_api, "submission")

    async def get_submission(
        self,
        course_id: str,
        assignment_id: str,
        user_id: str = "me",
    ) -> Optional[Submission]:
        """Return the user's submission for an assignment, or None if it has none."""
        submissions = await self.list_submissions(course_id, assignment_id, user_id)
        return submissions[0] if submissions else None

    async def turn_in(self, course_id: str, assignment_id: str, submission_id: str) -> None:
        await self.client.request(
            "POST",
            self._url(f"courses/{course_id}/courseWork/{assignment_id}/studentSubmissions/{submission_id}:turnIn"),
            json={},
            expect=(dict, type(None)),
        )
        logger.info(f"Turned in submission {submission_id}")

    async def attach_drive_file(
        self,
        course_id: str,
        assignment_id: str,
        submission_id: str,
        file_id: str,
    ) -> Submission:
        data = await self.client.request(
            "POST",
            self._url(
                f"courses/{course_id}/courseWork/{assignment_id}/studentSubmissions/{submission_id}:modifyAttachments"
            ),
            json={"addAttachments": [{"driveFile": {"id": file_id}}]},
        )
        return Submission.from_api(data)

    async def submit_assignment(
        self,
        drive: DriveService,
        course_id: str,
        assignment_id: str,
        file_name: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
    ) -> SubmissionResult:
        """
        Upload a file to Drive, attach it to the user's submission and turn it in.

        The upload is the only step that must succeed; if attaching or turning
        in is refused, the result says so and the file stays in Drive for a
        manual turn-in.
        """
        uploaded = await drive.upload_file(file_name, content, mime_type)
        manual = (
            f'File "{file_name}" uploaded to Google Drive. '
            "Please attach it and turn it in from Google Classroom."
        )

        try:
            submission = await self.get_submission(course_id, assignment_id)
            if submission is None:
                return SubmissionResult(uploaded.id, uploaded.web_view_link, False, manual)
            await self.attach_drive_file(course_id, assignment_id, submission.id, uploaded.id)
            await self.turn_in(course_id, assignment_id, submission.id)
        except (ApiError, Forbidden) as e:
            logger.warning(f"Automatic turn-in failed for {assignment_id}: {e}")
            return SubmissionResult(uploaded.id, uploaded.web_view_link, False, manual)

        return SubmissionResult(
            uploaded.id,
            uploaded.web_view_link,
            True,
            "Assignment submitted and turned in successfully.",
        )

