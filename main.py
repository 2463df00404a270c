"""
Main entry point for Habit Stacker
"""
import argparse
import json
import sys
from pathlib import Path
from typing import Optional, List

from loguru import logger

from habit_stacker.core.config import config, ensure_directories
from habit_stacker.core.local_database import KeyValueDatabase
from habit_stacker.core.remote_api_client import create_api_client, is_network_available
from habit_stacker.Modules.habit_module.habit_store import HabitStore
from habit_stacker.Modules.habit_module.habit_sync_manager import HabitSyncManager
from habit_stacker.Modules.habit_module.habit_patterns import analyze_patterns, generate_pattern_insights
from habit_stacker.Modules.habit_module.habit_progression import detect_stage
from habit_stacker.Modules.habit_module.checkin_logic import effective_check_ins
from habit_stacker.Modules.habit_module.user_state import project, route_for_state
from habit_stacker.Modules.conversation_module.conversation_store import ConversationStore
from habit_stacker.Modules.conversation_module.conversation_sync_manager import ConversationSyncManager


def setup_logging() -> None:
    """Configure application logging"""
    # Remove default logger
    logger.remove()

    # Add console logger
    logger.add(
        sys.stderr,
        format=config.LOG_FORMAT,
        level=config.LOG_LEVEL,
        colorize=True,
    )

    # Add file logger
    log_file = config.LOGS_DIR / "habit_stacker.log"
    logger.add(
        log_file,
        format=config.LOG_FORMAT,
        level=config.LOG_LEVEL,
        rotation=config.LOG_ROTATION,
        retention=config.LOG_RETENTION,
        encoding="utf-8",
    )

    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="habit-stacker", description=config.APP_NAME)
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="Show user state, stage and patterns")

    checkin = commands.add_parser("checkin", help="Log a check-in")
    checkin.add_argument("--date", help="YYYY-MM-DD (default: today)")
    checkin.add_argument("--no-trigger", action="store_true", help="Trigger did not occur")
    checkin.add_argument("--missed", action="store_true", help="Trigger occurred, action not taken")
    checkin.add_argument("--difficulty", type=int, help="Difficulty rating 1-5")
    checkin.add_argument("--reason", help="Miss reason")
    checkin.add_argument("--note")

    export = commands.add_parser("export", help="Print or write the habit record as JSON")
    export.add_argument("--output", type=Path)

    import_cmd = commands.add_parser("import", help="Import a previously exported JSON file")
    import_cmd.add_argument("path", type=Path)

    commands.add_parser("restore", help="Restore the habit record from the backup slot")
    reset = commands.add_parser("reset", help="Delete local habit data; with --user-id also the remote row")
    reset.add_argument("--user-id", help="Also delete this user's remote row")
    reset.add_argument("--token", help="Access token of the signed-in user")
    reset.add_argument("--refresh-token")

    sync = commands.add_parser("sync", help="Reconcile local data with the remote store")
    sync.add_argument("--user-id", required=True)
    sync.add_argument("--token", help="Access token of the signed-in user")
    sync.add_argument("--refresh-token")

    return parser


def _print_status(store: HabitStore) -> None:
    habit_data = store.load()
    state = project(habit_data, reentry_threshold_days=config.REENTRY_THRESHOLD_DAYS)
    print(f"State:       {state.value} (route {route_for_state(state)})")
    print(f"Habit state: {habit_data.state.value}")
    print(f"Reps:        {habit_data.reps_count}")
    print(f"Last done:   {habit_data.last_done_date or '-'}")
    if habit_data.needs_restore_confirmation:
        print("Primary data was unreadable, loaded from backup. Run 'restore' to keep it.")
    if habit_data.system:
        print(f"System:      {habit_data.system.anchor} -> {habit_data.system.action}")
    print(f"Stage:       {detect_stage(habit_data.created_at).name}")

    patterns = analyze_patterns(effective_check_ins(habit_data), habit_data.habit_type,
                                config.PATTERNS_UNLOCK_THRESHOLD)
    if patterns.locked:
        print(f"Patterns:    locked ({patterns.total_check_ins}/{config.PATTERNS_UNLOCK_THRESHOLD} days)")
        return

    print(f"Streak:      {patterns.current_streak} (longest {patterns.longest_streak})")
    result = generate_pattern_insights(patterns, habit_data.system, habit_data.habit_type)
    for insight in result.insights:
        print(f"  [{insight.type}] {insight.content}")
    if result.suggestion:
        print(f"  Suggestion: {result.suggestion.content}")


def _create_remote_client(args):
    """Klient REST z tokenami z argumentów lub z tokens.json w DATA_DIR"""
    tokens_file = config.DATA_DIR / "tokens.json"
    auth_token, refresh_token = args.token, args.refresh_token
    if not auth_token and tokens_file.exists():
        try:
            token_data = json.loads(tokens_file.read_text(encoding="utf-8"))
            auth_token = token_data.get('access_token')
            refresh_token = refresh_token or token_data.get('refresh_token')
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load tokens: {e}")

    def on_token_refreshed(access_token: str, new_refresh_token: str):
        tokens_file.write_text(
            json.dumps({'access_token': access_token, 'refresh_token': new_refresh_token}),
            encoding="utf-8",
        )
        logger.info("Saved refreshed tokens")

    return create_api_client(
        auth_token=auth_token,
        refresh_token=refresh_token,
        on_token_refreshed=on_token_refreshed,
    )


def _remote_ready() -> bool:
    if not config.REMOTE_API_URL:
        logger.error("REMOTE_API_URL is not configured")
        return False
    if not is_network_available():
        logger.warning("Network unavailable, local data kept as is")
        return False
    return True


def _run_reset(args, store: HabitStore) -> int:
    if not args.user_id:
        store.reset_habit_data()
        print("Local habit data reset. The remote row was not touched (pass --user-id to delete it).")
        return 0

    # Reset z --user-id wymaga dostępnego serwera
    if not _remote_ready():
        return 1

    manager = HabitSyncManager(store, _create_remote_client(args), config.HABIT_TABLE,
                               config.SYNC_DEBOUNCE_SECONDS)
    manager.enable(args.user_id)
    try:
        store.reset_habit_data()
    finally:
        manager.disable()

    result = manager.last_result
    if result is None or result.operation != "delete" or not result.ok:
        print("Local habit data reset, but the remote row could not be deleted.")
        return 1
    print("Habit data reset locally and remotely.")
    return 0


def _run_sync(args, store: HabitStore, conversation_store: ConversationStore) -> int:
    if not _remote_ready():
        return 1

    api_client = _create_remote_client(args)
    managers = [
        HabitSyncManager(store, api_client, config.HABIT_TABLE, config.SYNC_DEBOUNCE_SECONDS),
        ConversationSyncManager(conversation_store, api_client, config.CONVERSATION_TABLE,
                                config.SYNC_DEBOUNCE_SECONDS),
    ]

    errors = 0
    for manager in managers:
        manager.initialize(args.user_id)
        manager.flush()
        errors += manager.error_count
        manager.disable()

    if errors:
        logger.warning(f"Sync finished with {errors} error(s)")
        return 1
    logger.success("Sync finished")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    args = _build_parser().parse_args(argv)

    try:
        # Setup
        ensure_directories()
        setup_logging()

        database = KeyValueDatabase(config.LOCAL_DB_PATH)
        store = HabitStore(database)

        if args.command == "status":
            _print_status(store)
        elif args.command == "checkin":
            habit_data = store.log_check_in(
                trigger_occurred=not args.no_trigger,
                action_taken=not (args.no_trigger or args.missed),
                date=args.date,
                difficulty_rating=args.difficulty,
                miss_reason=args.reason,
                note=args.note,
            )
            print(f"Logged. Reps: {habit_data.reps_count}, state: {habit_data.state.value}")
        elif args.command == "export":
            payload = store.export_habit_data()
            if args.output:
                args.output.write_text(payload, encoding="utf-8")
                logger.info(f"Exported habit data to {args.output}")
            else:
                print(json.dumps(json.loads(payload), indent=2, ensure_ascii=False))
        elif args.command == "import":
            habit_data = store.import_habit_data(args.path.read_text(encoding="utf-8"))
            print(f"Imported. State: {habit_data.state.value}, reps: {habit_data.reps_count}")
        elif args.command == "restore":
            if store.restore_from_backup() is None:
                print("No usable backup found.")
                return 1
            print("Restored from backup.")
        elif args.command == "reset":
            return _run_reset(args, store)
        elif args.command == "sync":
            return _run_sync(args, store, ConversationStore(database))

        return 0

    except Exception as e:
        logger.exception(f"Application error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
