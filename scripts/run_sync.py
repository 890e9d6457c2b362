"""
Drive inventory sync sessions from the command line.

Usage:
    python scripts/run_sync.py start [--batch-size 25]
    python scripts/run_sync.py continue [--session-id ID]
    python scripts/run_sync.py status [--session-id ID]
    python scripts/run_sync.py kill [--session-id ID]
    python scripts/run_sync.py run [--batch-size 25] [--max-batches N]
    python scripts/run_sync.py report --session-id ID
    python scripts/run_sync.py push --channel shopify
"""

import argparse
import sys
from pathlib import Path

# Add backend to path so we can import modules
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import structlog

from exceptions import AppError
from models.sync import SyncControlResponse, ControlState, Channel
from services.sync_session_service import get_sync_session_manager
from services.sync_report_service import get_sync_report_service

logger = structlog.get_logger(__name__)

STATE_MARKS = {
    ControlState.NO_SESSION: "·",
    ControlState.IN_PROGRESS: "…",
    ControlState.COMPLETED: "✓",
    ControlState.COMPLETED_WITH_FAILURES: "!",
    ControlState.FAILED: "✗",
}


def print_response(response: SyncControlResponse) -> None:
    """Print a control response."""
    print(f"{STATE_MARKS[response.state]} [{response.state.value}] {response.message}")

    session = response.session
    if session:
        print(f"  Session: {session.session_id}")
        print(f"  Batches: {session.current_batch_index}/{session.total_batches}")
        print(f"  SKUs:    {session.processed_skus}/{session.total_skus}")
        if response.failures:
            print(f"  Failed updates: {response.failures}")

    batch = response.batch
    if batch:
        print(
            f"  Last batch #{batch.batch_index}: {batch.skus_found}/{batch.skus_requested} found, "
            f"{batch.products_resolved} resolved, {batch.updates_failed}/{batch.updates_attempted} "
            f"updates failed, {batch.duration_ms}ms"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Batched, resumable inventory sync."
    )
    parser.add_argument(
        "command",
        choices=["start", "continue", "status", "kill", "run", "report", "push"],
        help="Operation to perform",
    )
    parser.add_argument(
        "--session-id",
        default=None,
        help="Target session (default: the active session)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Warehouse SKUs per batch for a new session",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="With 'run': stop after this many batches",
    )
    parser.add_argument(
        "--channel",
        choices=[c.value for c in Channel],
        default=None,
        help="With 'push': channel to update from stored inventory",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    manager = get_sync_session_manager()

    try:
        if args.command == "start":
            print_response(manager.start(batch_size=args.batch_size))
        elif args.command == "continue":
            print_response(manager.continue_session(args.session_id))
        elif args.command == "status":
            print_response(manager.get_status(args.session_id))
        elif args.command == "kill":
            result = manager.kill(args.session_id)
            print(f"✓ {result.message}")
        elif args.command == "run":
            response = manager.run_to_completion(
                batch_size=args.batch_size,
                max_batches=args.max_batches
            )
            print_response(response)
            return 1 if response.state == ControlState.FAILED else 0
        elif args.command == "report":
            if not args.session_id:
                print("✗ --session-id is required for report")
                return 2
            report = get_sync_report_service().get_report(args.session_id)
            print(report.model_dump_json(indent=2))
        elif args.command == "push":
            if not args.channel:
                print("✗ --channel is required for push")
                return 2
            result = manager.sync_channel(args.channel)
            mark = "✓" if result.success else "!"
            print(f"{mark} {result.message} ({result.inventory_skus} stored SKUs)")
            for item in result.failed_items:
                print(f"  {item.sku}: {item.reason.value if item.reason else 'error'} {item.error or ''}")
            return 0 if result.success else 1

    except AppError as e:
        logger.error("sync_command_failed", command=args.command, code=e.code, error=e.message)
        print(f"✗ {e.code}: {e.message}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
