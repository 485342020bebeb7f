"""
Command-line entry point for the group matching engine.

Usage:
    python -m groupmatch.run run --data-dir data --store store.json --event EVT1
    python -m groupmatch.run preview --data-dir data --event EVT1 --output groups.csv
    python -m groupmatch.run history --store store.json --event EVT1
    python -m groupmatch.run sweep --data-dir data --store store.json

The data directory holds events.csv, registrations.csv and profiles.csv.
The store file is a JSON snapshot of the matching store; it is created on
first use and rewritten after every command that changes it.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """Configure logging level from config."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


def _load_config(config_path: str):
    from .configs import MatchingConfig

    if Path(config_path).exists():
        return MatchingConfig.from_file(config_path)
    logger.warning(f"Config file {config_path} not found, using defaults")
    return MatchingConfig()


def _open_store(store_path: Optional[str]):
    from .storage import InMemoryMatchingStore

    if store_path and Path(store_path).exists():
        logger.info(f"Loading matching store from {store_path}")
        return InMemoryMatchingStore.load(store_path)
    return InMemoryMatchingStore()


def _print_result(result, output: Optional[str]) -> None:
    frame = result.groups_frame()
    print(f"Status: {result.status.value}")
    for warning in result.warnings:
        print(f"  - {warning}")
    stats = result.statistics
    print(
        f"Groups: {stats.total_groups}, matched {stats.matched_count}/{stats.total_participants}, "
        f"average score {stats.average_match_score}"
    )
    if not frame.empty:
        print(frame.to_string(index=False))
    if output:
        frame.to_csv(output, index=False)
        logger.info(f"Wrote {len(frame)} rows to {output}")


def run_command(args: argparse.Namespace) -> int:
    """Dispatch one sub-command; returns the process exit code."""
    from .eligibility import load_registration_source
    from .orchestrator import MatchingOrchestrator
    from .scheduling import AutoMatchingSweep

    config = _load_config(args.config)
    setup_logging(config.log_level)

    store = _open_store(getattr(args, "store", None))

    if args.command == "history":
        attempts = store.list_attempts(args.event)
        if not attempts:
            print(f"No matching attempts for event {args.event}")
        for attempt in attempts:
            print(
                f"#{attempt.attempt_number} {attempt.created_at.isoformat()} "
                f"{attempt.status.value}: {attempt.groups_formed} groups, "
                f"{attempt.matched_count}/{attempt.total_participants} matched, "
                f"by {attempt.executed_by} in {attempt.execution_time}s"
            )
        return 0

    source = load_registration_source(args.data_dir)
    orchestrator = MatchingOrchestrator(source, store, config)

    if args.command == "preview":
        _print_result(orchestrator.preview_matching(args.event), args.output)
        return 0

    if args.command == "run":
        result = orchestrator.run_matching(args.event, triggered_by=args.triggered_by)
        _print_result(result, args.output)
    elif args.command == "sweep":
        now = datetime.fromisoformat(args.now) if args.now else None
        summary = AutoMatchingSweep(orchestrator, config=config).run_sweep(now)
        if summary is not None:
            print(summary.to_dict())

    if args.store:
        store.save(args.store)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Form compatibility groups for events")
    parser.add_argument(
        "--config",
        type=str,
        default="configs/config.yaml",
        help="Path to configuration file"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Match an event and persist the groups")
    run_parser.add_argument("--data-dir", type=str, required=True, help="Directory with the CSV tables")
    run_parser.add_argument("--store", type=str, default=None, help="JSON store snapshot")
    run_parser.add_argument("--event", type=str, required=True, help="Event id")
    run_parser.add_argument("--triggered-by", type=str, default="cli", help="Recorded on the attempt")
    run_parser.add_argument("--output", type=str, default=None, help="Write groups to this CSV file")

    preview_parser = subparsers.add_parser("preview", help="Compute groups without persisting")
    preview_parser.add_argument("--data-dir", type=str, required=True, help="Directory with the CSV tables")
    preview_parser.add_argument("--event", type=str, required=True, help="Event id")
    preview_parser.add_argument("--output", type=str, default=None, help="Write groups to this CSV file")

    history_parser = subparsers.add_parser("history", help="List matching attempts of an event")
    history_parser.add_argument("--store", type=str, required=True, help="JSON store snapshot")
    history_parser.add_argument("--event", type=str, required=True, help="Event id")

    sweep_parser = subparsers.add_parser("sweep", help="Auto-match events starting in the window")
    sweep_parser.add_argument("--data-dir", type=str, required=True, help="Directory with the CSV tables")
    sweep_parser.add_argument("--store", type=str, default=None, help="JSON store snapshot")
    sweep_parser.add_argument("--now", type=str, default=None, help="Reference time (ISO format)")

    return parser


def main(argv=None):
    """Main entry point for the command line."""
    args = build_parser().parse_args(argv)

    from .errors import MatchingError

    try:
        return run_command(args)
    except MatchingError as e:
        logger.error(f"{args.command} failed ({e.code}): {e.message}")
        return 1
    except Exception as e:
        logger.exception(f"{args.command} failed with error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
