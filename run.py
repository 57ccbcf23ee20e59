#!/usr/bin/env python3
"""
Classroom Sync Runner Script

Entry point for running sync cycles and inspecting notifications.

Usage:
    python run.py --sync                   # Run one sync cycle
    python run.py --notifications          # Show the notification log
    python run.py --set-token TOKEN        # Store an access token
    python run.py --set-token TOKEN --expires-in 3600
    python run.py --disconnect             # Forget the stored token
    python run.py --check-config           # Validate configuration
    python run.py --sync --user alice      # Act for a specific user
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))


def check_config() -> int:
    """Validate configuration and print a summary."""
    from classroom_sync.core import get_config
    from classroom_sync.core.config import get_env_settings
    from classroom_sync.core.errors import handle_missing_config

    try:
        app_config = get_config()
    except Exception as e:
        print(f"❌ Invalid configuration: {e}")
        return 1

    settings = get_env_settings()
    print("✓ Configuration loaded")
    print(f"  Store:        {app_config.store_path}")
    print(f"  Classroom:    {app_config.api.classroom_base_url}")
    print(f"  Drive:        {app_config.api.drive_base_url}")
    print(f"  Retries:      {app_config.api.max_retries} (backoff base {app_config.api.backoff_base:g})")
    quiet = app_config.notifications.quiet_hours
    print(f"  Quiet hours:  {quiet.start + '-' + quiet.end if quiet.enabled else 'off'}")
    print(f"  ntfy alerts:  {app_config.ntfy.topic if app_config.ntfy.enabled else 'off'}")

    if not settings.google_client_id:
        print()
        print(handle_missing_config("Google Classroom", "client_id", "GOOGLE_CLIENT_ID"))
    return 0


def resolve_user(args) -> str:
    from classroom_sync.core import env

    user_id = args.user or env().classroom_user_id
    if not user_id:
        raise SystemExit("No user given. Pass --user or set CLASSROOM_USER_ID in .env")
    return user_id


def build_sync(app_config, user_id: str):
    """Wire store, client, cache, engine and sync coordinator for one user."""
    from classroom_sync.classroom import (
        AssignmentSync,
        ClassroomService,
        CredentialStore,
        NotificationEngine,
        NtfySink,
        ResilientApiClient,
    )
    from classroom_sync.core import SQLiteKeyValueStore, cache_from_settings

    store = SQLiteKeyValueStore(app_config.store_path)
    credentials = CredentialStore(store)
    client = ResilientApiClient(
        credentials,
        user_id,
        provider=app_config.api.provider,
        timeout=app_config.api.timeout,
        max_retries=app_config.api.max_retries,
        backoff_base=app_config.api.backoff_base,
    )
    sink = NtfySink(app_config.ntfy)
    engine = NotificationEngine(store, user_id, settings=app_config.notifications, sink=sink)
    classroom = ClassroomService(
        client,
        app_config.api.classroom_base_url,
        cache=cache_from_settings(app_config.cache),
    )
    sync = AssignmentSync(
        classroom,
        engine,
        credentials,
        user_id,
        provider=app_config.api.provider,
        due_soon_hours=app_config.notifications.study_summary.due_soon_hours,
    )
    return sync, client, sink


async def run_sync(user_id: str) -> int:
    """Run one sync cycle for a user and print the outcome."""
    from classroom_sync.core import ClassroomError, Unauthenticated, config, user_message

    app_config = config()
    sync, client, sink = build_sync(app_config, user_id)

    if not sync.credentials.connection_info(user_id, app_config.api.provider).is_connected:
        print(f"❌ {user_message(Unauthenticated())}")
        return 1

    try:
        with sync.engine:
            result = await sync.sync()
    except ClassroomError as e:
        print(f"❌ {user_message(e, detailed=True)}")
        return 1
    finally:
        await client.close()
        await sink.close()

    if result is None:
        print("Sync already running")
        return 0

    print(f"\n✓ {result.summary()}\n")
    for entry in result.plan:
        item = entry.item
        due = item.assignment.due_date.isoformat() if item.assignment.due_date else "no due date"
        course = item.course_name or item.assignment.course_id
        print(
            f"  [{entry.priority.level.value:<6}] [{item.status.value:<14}] "
            f"{item.assignment.title} ({course}, {due})"
        )

    print(
        f"\n{result.analytics.completion_percentage:g}% complete, "
        f"stress {result.analytics.stress_level}/10, "
        f"~{result.analytics.average_estimated_hours:.1f}h per assignment"
    )

    actions = result.analytics.recommended_actions + result.study_recommendations
    if actions:
        print("\nRecommended:")
        for action in actions:
            print(f"  • {action}")

    if result.notifications:
        print("\nNew notifications:")
        for notification in result.notifications:
            print(f"  {notification}")
    return 0


def show_notifications(user_id: str, limit: int) -> int:
    from classroom_sync.classroom import NotificationEngine
    from classroom_sync.core import SQLiteKeyValueStore, config

    app_config = config()
    with NotificationEngine(SQLiteKeyValueStore(app_config.store_path), user_id) as engine:
        notifications = engine.get_notifications(limit=limit)
        print(f"\n{engine.get_unread_count()} unread, {engine.get_urgent_count()} urgent\n")
        if not notifications:
            print("No notifications.")
        for notification in notifications:
            print(f"  {notification}")
    return 0


def main():
    import argparse
    import asyncio

    parser = argparse.ArgumentParser(description="Classroom Sync - Assignment synchronization and notifications")
    parser.add_argument("--sync", action="store_true", help="Run one sync cycle")
    parser.add_argument("--notifications", action="store_true", help="Show the notification log")
    parser.add_argument("--limit", type=int, default=20, help="Maximum notifications to show")
    parser.add_argument("--disconnect", action="store_true", help="Forget the stored access token")
    parser.add_argument("--set-token", type=str, metavar="TOKEN", help="Store an access token")
    parser.add_argument("--expires-in", type=float, metavar="SECONDS", help="Lifetime for --set-token")
    parser.add_argument("--check-config", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--user", type=str, help="Portal user id (defaults to CLASSROOM_USER_ID)")

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config())

    from classroom_sync.core import config, ensure_directories, setup_logging

    app_config = config()
    ensure_directories(app_config)
    user_id = resolve_user(args)
    setup_logging(app_config, user_id=user_id)

    # Store token
    if args.set_token:
        from classroom_sync.classroom import CredentialStore
        from classroom_sync.core import SQLiteKeyValueStore

        credentials = CredentialStore(SQLiteKeyValueStore(app_config.store_path))
        credentials.set(user_id, app_config.api.provider, args.set_token, expires_in=args.expires_in)
        print(f"✓ Token stored for {user_id}")
        return

    # Disconnect
    if args.disconnect:
        sync, _, _ = build_sync(app_config, user_id)
        if sync.disconnect():
            print(f"✓ Disconnected {user_id}")
        else:
            print(f"{user_id} was not connected")
        return

    if args.notifications:
        sys.exit(show_notifications(user_id, args.limit))

    if args.sync:
        sys.exit(asyncio.run(run_sync(user_id)))

    parser.print_help()


if __name__ == "__main__":
    main()
