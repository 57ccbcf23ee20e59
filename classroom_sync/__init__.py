"""
Classroom Sync - Assignment Synchronization & Notification Engine
==================================================================

Talks to Google Classroom and Google Drive, reconciles courses, coursework
and submissions into one canonical assignment status, and turns status
changes into prioritized, deduplicated notifications.

Modules:
- core: Configuration, logging, errors, persistence, TTL cache
- classroom: API client, fetchers, status resolver, notification engine, sync
"""

__version__ = "1.0.0"
__author__ = "Classroom Sync Project"
