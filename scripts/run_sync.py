"""Trigger a POS sync for a client and print the result.

Examples:
    python scripts/run_sync.py c1
    python scripts/run_sync.py c1 --force
    python scripts/run_sync.py c1 --status
    python scripts/run_sync.py c1 --reset "Vendor fixed credentials"
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.errors import ClientNotFound
from core.observability.logging import configure_logging
from sync_engine.service import build_engine


def _print(model) -> None:
    print(json.dumps(model.model_dump(mode="json"), indent=2))


async def run(args) -> int:
    engine = build_engine(args.db)
    await engine.start()
    try:
        if args.reset is not None:
            _print(engine.reset_circuit_breaker(args.client_id, args.reset or "Manual reset"))
        elif args.status:
            _print(await engine.get_integration_status(args.client_id, recent=args.logs))
        else:
            result = await engine.trigger_sync(args.client_id, force=args.force)
            _print(result)
            # Let in-process production tasks finish before exiting
            join = getattr(engine.task_queue, "join", None)
            if result.task_id and join is not None:
                await join()
                _print(await engine.get_task(result.task_id))
            if not result.success:
                return 1
    except ClientNotFound as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    finally:
        await engine.shutdown()
    return 0


def main():
    """Entry point."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run a POS sync for one client")
    parser.add_argument("client_id", help="Client to sync")
    parser.add_argument("--db", type=Path, default=None, help=f"SQLite state database (default: {settings.db_path})")
    parser.add_argument("--force", action="store_true", help="Sync even if the circuit breaker is open")
    parser.add_argument("--status", action="store_true", help="Print integration status instead of syncing")
    parser.add_argument("--logs", type=int, default=10, help="Recent log entries to include with --status")
    parser.add_argument("--reset", nargs="?", const="", default=None, metavar="REASON", help="Reset the circuit breaker")
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args()

    configure_logging(level=args.log_level, json_format=settings.json_logs, include_temporal=False)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
