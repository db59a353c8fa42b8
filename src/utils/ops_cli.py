"""
Operations CLI Utility

Command-line interface for the data-mode and sync chores an admin runs
outside the app: switching mode, loading, replaying the pending queue,
the one-time migration, local backups and resetting the local cache.

Usage Examples:
    # Show mode, writability and the pending queue
    python -m src.utils.ops_cli status

    # Switch to remote mode (needs MEALRUN_SUPABASE_URL / MEALRUN_SUPABASE_KEY)
    python -m src.utils.ops_cli mode remote

    # Load the dataset according to the current mode
    python -m src.utils.ops_cli load

    # Replay saves queued while offline
    python -m src.utils.ops_cli replay

    # Push the local dataset to the remote store (runs once)
    python -m src.utils.ops_cli migrate

    # Back up and restore the local cache
    python -m src.utils.ops_cli export backup.json
    python -m src.utils.ops_cli import backup.json

    # Edit deadline for a delivery date (or for this week)
    python -m src.utils.ops_cli deadline 2024-06-03

    # Drop and recreate the local cache (deletes every cached record)
    python -m src.utils.ops_cli reset --confirm
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from src.services.database import close_connections, initialize_app_database, reset_database
from src.services.deadline_service import compute_deadline
from src.services.exceptions import ServiceError
from src.services.remote_store import InMemoryRemoteStore, RemoteStore, SupabaseRemoteStore
from src.services.snapshot_service import dataset_counts, export_dataset, replace_local_dataset
from src.services.sync_service import SyncCoordinator
from src.utils.config import get_config


def build_store() -> RemoteStore:
    """Supabase when configured, otherwise an offline placeholder store."""
    config = get_config()
    if config.remote_configured:
        return SupabaseRemoteStore.from_config(config)
    return InMemoryRemoteStore(online=False)


def _print_counts(counts):
    for key, count in counts.items():
        print(f"  {key}: {count}")


def show_status(coordinator: SyncCoordinator) -> int:
    """Print the sync context of this device."""
    context = coordinator.context
    print(f"Mode:               {context.mode.value}")
    print(f"Writable:           {'yes' if context.writable else 'no (read-only fallback)'}")
    print(f"Pending saves:      {context.queue_length}")
    print(f"Last synced:        {context.status.last_synced_at or 'never'}")
    print(f"Migration complete: {'yes' if context.status.migration_complete else 'no'}")
    return 0


def set_mode(coordinator: SyncCoordinator, mode: str) -> int:
    """Switch the data mode."""
    if mode == "remote" and not get_config().remote_configured:
        print("Warning: remote store is not configured; loads will fall back to read-only")
    new_mode = coordinator.set_mode(mode)
    print(f"Data mode set to {new_mode.value}")
    return 0


def load(coordinator: SyncCoordinator) -> int:
    """Load the dataset and report where it came from."""
    result = coordinator.load()
    print(f"Loaded from {result.source} ({result.mode} mode)")
    if not result.writable:
        print("Remote store unreachable: local data is read-only")
    _print_counts(result.counts)
    return 0 if result.writable else 1


def replay(coordinator: SyncCoordinator) -> int:
    """Replay the pending queue."""
    if coordinator.context.queue_length == 0:
        print("No pending saves")
        return 0
    processed = coordinator.replay_pending()
    print(f"Replayed {processed} pending save(s)")
    return 0


def migrate(coordinator: SyncCoordinator) -> int:
    """Run the one-time local-to-remote migration."""
    result = coordinator.migrate_local_to_remote()
    if result.migrated:
        print(f"Migrated: {', '.join(result.kinds)}")
        return 0
    print(result.reason)
    return 0 if coordinator.context.status.migration_complete else 1


def export_file(output_file: str) -> int:
    """Write the local dataset to a JSON file."""
    print(f"Exporting local data to {output_file}...")
    document = export_dataset()
    with open(output_file, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False)
    _print_counts(dataset_counts(document))
    return 0


def import_file(input_file: str) -> int:
    """Replace the local dataset with the contents of a JSON file."""
    print(f"Importing local data from {input_file}...")
    with open(input_file, "r", encoding="utf-8") as f:
        document = json.load(f)
    counts = replace_local_dataset(document)
    _print_counts(counts)
    return 0


def show_deadline(target_date=None) -> int:
    """Print the edit deadline for a delivery date."""
    deadline = compute_deadline(target_date)
    label = target_date or "this week"
    print(f"Edits for {label} close at {deadline.strftime('%A %Y-%m-%d %H:%M:%S')}")
    return 0


def reset_cache(confirm: bool) -> int:
    """Drop and recreate every local cache table."""
    if not confirm:
        print("Refusing to reset without --confirm: every cached record would be deleted")
        return 1
    reset_database(confirm=True)
    print("Local cache reset")
    return 0


def main(argv=None, store: RemoteStore = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Data mode and sync operations for MealRun",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Show sync status:
    python -m src.utils.ops_cli status

  Switch data mode:
    python -m src.utils.ops_cli mode remote

  Replay saves queued while offline:
    python -m src.utils.ops_cli replay

  Back up the local cache:
    python -m src.utils.ops_cli export backup.json

Note: the remote store is configured through MEALRUN_SUPABASE_URL and
MEALRUN_SUPABASE_KEY.
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("status", help="Show data mode and pending queue")

    mode_parser = subparsers.add_parser("mode", help="Switch data mode")
    mode_parser.add_argument("mode", choices=["local", "remote"], help="New data mode")

    subparsers.add_parser("load", help="Load the dataset for the current mode")
    subparsers.add_parser("replay", help="Replay saves queued while offline")
    subparsers.add_parser("migrate", help="Push local data to the remote store (once)")

    export_parser = subparsers.add_parser("export", help="Export the local dataset")
    export_parser.add_argument("file", help="JSON file path")

    import_parser = subparsers.add_parser("import", help="Replace the local dataset")
    import_parser.add_argument("file", help="JSON file path")

    deadline_parser = subparsers.add_parser("deadline", help="Show the edit deadline")
    deadline_parser.add_argument("date", nargs="?", help="Delivery date (YYYY-MM-DD)")

    reset_parser = subparsers.add_parser("reset", help="Drop and recreate the local cache")
    reset_parser.add_argument("--confirm", action="store_true", help="Required; deletes all cached data")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    initialize_app_database()

    try:
        if args.command == "export":
            return export_file(args.file)
        elif args.command == "import":
            return import_file(args.file)
        elif args.command == "deadline":
            return show_deadline(args.date)
        elif args.command == "reset":
            return reset_cache(args.confirm)

        coordinator = SyncCoordinator(store if store is not None else build_store())
        if args.command == "status":
            return show_status(coordinator)
        elif args.command == "mode":
            return set_mode(coordinator, args.mode)
        elif args.command == "load":
            return load(coordinator)
        elif args.command == "replay":
            return replay(coordinator)
        elif args.command == "migrate":
            return migrate(coordinator)
    except (ServiceError, OSError, json.JSONDecodeError) as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        close_connections()

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
