"""
Data models for Google Classroom synchronization.

Records are parsed defensively from the raw API payloads; a record without
its identifier is rejected with ValidationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from loguru import logger

from ..core.errors import ValidationError

T = TypeVar("T")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class AssignmentState(str, Enum):
    """Coursework lifecycle state."""
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class SubmissionState(str, Enum):
    """Student submission state."""
    NOT_CREATED = "NOT_CREATED"
    CREATED = "CREATED"
    TURNED_IN = "TURNED_IN"
    RETURNED = "RETURNED"


# Remote states folded into the local model
_SUBMISSION_STATE_ALIASES = {
    "NEW": SubmissionState.CREATED,
    "CREATED": SubmissionState.CREATED,
    "RECLAIMED_BY_STUDENT": SubmissionState.CREATED,
    "TURNED_IN": SubmissionState.TURNED_IN,
    "RETURNED": SubmissionState.RETURNED,
}


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by Google APIs."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_due_date(value: Optional[Dict[str, Any]]) -> Optional[date]:
    """Parse a Classroom {year, month, day} date."""
    if not value:
        return None
    try:
        return date(int(value["year"]), int(value["month"]), int(value["day"]))
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Ignoring malformed due date: {value}")
        return None


def _parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _require(data: Any, key: str, kind: str) -> str:
    if not isinstance(data, dict):
        raise ValidationError(f"{kind} record is not an object")
    value = data.get(key)
    if value in (None, ""):
        raise ValidationError(f"{kind} record is missing '{key}'")
    return str(value)


@dataclass
class Teacher:
    """Course teacher identity."""
    user_id: str
    name: str
    email: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Teacher":
        if not isinstance(data, dict):
            raise ValidationError("Teacher record is not an object")
        profile = data.get("profile") or {}
        user_id = data.get("userId") or profile.get("id")
        if not user_id:
            raise ValidationError("Teacher record is missing 'userId'")
        photo = profile.get("photoUrl")
        if photo and photo.startswith("//"):
            photo = f"https:{photo}"
        return cls(
            user_id=str(user_id),
            name=(profile.get("name") or {}).get("fullName", "Unknown Teacher"),
            email=profile.get("emailAddress"),
            photo_url=photo,
        )


@dataclass
class Course:
    """Google Classroom course."""
    id: str
    name: str
    section: str = ""
    enrollment_code: str = ""
    teachers: List[Teacher] = field(default_factory=list)
    description: Optional[str] = None
    room: Optional[str] = None
    state: str = "ACTIVE"
    alternate_link: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Course":
        return cls(
            id=_require(data, "id", "Course"),
            name=data.get("name", "Unknown Course"),
            section=data.get("section", ""),
            enrollment_code=data.get("enrollmentCode", ""),
            description=data.get("description"),
            room=data.get("room"),
            state=data.get("courseState", "ACTIVE"),
            alternate_link=data.get("alternateLink"),
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.section})" if self.section else self.name


@dataclass
class Assignment:
    """Classroom coursework item."""
    id: str
    course_id: str
    title: str
    creation_time: Optional[datetime] = None
    due_date: Optional[date] = None
    max_points: float = 0
    state: AssignmentState = AssignmentState.ACTIVE
    description: Optional[str] = None
    alternate_link: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Assignment":
        assignment_id = _require(data, "id", "Assignment")
        state = AssignmentState.DELETED if data.get("state") == "DELETED" else AssignmentState.ACTIVE
        return cls(
            id=assignment_id,
            course_id=_require(data, "courseId", "Assignment"),
            title=data.get("title", "Untitled assignment"),
            creation_time=parse_datetime(data.get("creationTime")),
            due_date=parse_due_date(data.get("dueDate")),
            max_points=_parse_float(data.get("maxPoints")) or 0,
            state=state,
            description=data.get("description"),
            alternate_link=data.get("alternateLink"),
        )

    def __str__(self) -> str:
        due_str = self.due_date.strftime("%b %d") if self.due_date else "No due date"
        return f"{self.title} - Due: {due_str}"


@dataclass
class Submission:
    """A learner's submission against one assignment."""
    id: str
    assignment_id: str
    state: SubmissionState = SubmissionState.NOT_CREATED
    late: bool = False
    assigned_grade: Optional[float] = None
    draft_grade: Optional[float] = None
    assigned_max_points: Optional[float] = None
    course_id: Optional[str] = None
    user_id: Optional[str] = None
    alternate_link: Optional[str] = None

    @property
    def grade(self) -> Optional[float]:
        """Assigned grade, falling back to the draft grade."""
        return self.assigned_grade if self.assigned_grade is not None else self.draft_grade

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Submission":
        raw_state = data.get("state") if isinstance(data, dict) else None
        state = _SUBMISSION_STATE_ALIASES.get(raw_state, SubmissionState.NOT_CREATED)
        if raw_state and raw_state not in _SUBMISSION_STATE_ALIASES:
            logger.debug(f"Unrecognized submission state {raw_state!r}")
        return cls(
            id=_require(data, "id", "Submission"),
            assignment_id=_require(data, "courseWorkId", "Submission"),
            state=state,
            late=bool(data.get("late", False)),
            assigned_grade=_parse_float(data.get("assignedGrade")),
            draft_grade=_parse_float(data.get("draftGrade")),
            assigned_max_points=_parse_float(data.get("assignedMaxPoints")),
            course_id=data.get("courseId"),
            user_id=data.get("userId"),
            alternate_link=data.get("alternateLink"),
        )


@dataclass
class DriveItem:
    """A Google Drive file or folder."""
    id: str
    name: str
    mime_type: str
    parents: List[str] = field(default_factory=list)
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    size: Optional[int] = None
    web_view_link: Optional[str] = None
    thumbnail_link: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DriveItem":
        size = data.get("size")
        return cls(
            id=_require(data, "id", "Drive item"),
            name=data.get("name", ""),
            mime_type=data.get("mimeType", "application/octet-stream"),
            parents=list(data.get("parents") or []),
            created_time=parse_datetime(data.get("createdTime")),
            modified_time=parse_datetime(data.get("modifiedTime")),
            size=int(size) if size is not None and str(size).isdigit() else None,
            web_view_link=data.get("webViewLink"),
            thumbnail_link=data.get("thumbnailLink"),
        )

    def __str__(self) -> str:
        kind = "Folder" if self.is_folder else "File"
        return f"{self.name} ({kind})"


def parse_records(items: List[Any], parser: Callable[[Dict[str, Any]], T], kind: str) -> List[T]:
    """Parse a list of raw records, skipping malformed ones."""
    records: List[T] = []
    for item in items:
        try:
            records.append(parser(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {kind}: {e}")
    return records
