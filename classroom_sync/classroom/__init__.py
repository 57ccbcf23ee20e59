"""
Classroom module for Classroom Sync.

Google Classroom and Drive access, assignment status resolution,
prioritization and the notification engine.
"""

from .client import ResilientApiClient, classify_error
from .credentials import DEFAULT_PROVIDER, ConnectionInfo, Credential, CredentialStore
from .google_classroom import ClassroomService, SubmissionResult
from .google_drive import DriveService
from .models import (
    Assignment,
    AssignmentState,
    Course,
    DriveItem,
    Submission,
    SubmissionState,
    Teacher,
)
from .notifications import (
    Notification,
    NotificationEngine,
    NotificationType,
    is_in_quiet_hours,
)
from .sinks import MemorySink, NotificationPriority, NotificationSink, NtfySink
from .status import (
    AssignmentAnalytics,
    AssignmentPriority,
    PrioritizedAssignment,
    PriorityLevel,
    ResolvedAssignment,
    ResolvedStatus,
    StatusResolution,
    build_analytics,
    calculate_priority,
    get_study_recommendations,
    prioritize,
    resolve_all,
    resolve_status,
    sort_by_priority,
)
from .sync import AssignmentSync, SyncResult

__all__ = [
    "Assignment",
    "AssignmentAnalytics",
    "AssignmentPriority",
    "AssignmentState",
    "AssignmentSync",
    "ClassroomService",
    "ConnectionInfo",
    "Course",
    "Credential",
    "CredentialStore",
    "DEFAULT_PROVIDER",
    "DriveItem",
    "DriveService",
    "MemorySink",
    "Notification",
    "NotificationEngine",
    "NotificationPriority",
    "NotificationSink",
    "NotificationType",
    "NtfySink",
    "PrioritizedAssignment",
    "PriorityLevel",
    "ResilientApiClient",
    "ResolvedAssignment",
    "ResolvedStatus",
    "StatusResolution",
    "Submission",
    "SubmissionResult",
    "SubmissionState",
    "SyncResult",
    "Teacher",
    "build_analytics",
    "calculate_priority",
    "classify_error",
    "get_study_recommendations",
    "is_in_quiet_hours",
    "prioritize",
    "resolve_all",
    "resolve_status",
    "sort_by_priority",
]
