#!/usr/bin/env python3
"""
Assessment engine operations CLI

Usage:
    python -m assessment_engine.cli <command> [options]

Commands:
    db          Database operations (init)
    paper       Question bank operations (create)
    sweep       Deadline sweep (run-once)
    session     Session operations (finalize)
    result      Result operations (verify)

Environment:
    DATABASE_URL    SQLAlchemy async connection string
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from assessment_engine import __version__
from assessment_engine.cli.db_commands import DbCommand
from assessment_engine.cli.paper_commands import PaperCommand
from assessment_engine.cli.session_commands import SweepCommand, SessionCommand, ResultCommand


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="assessment-engine",
        description="Timed assessment session engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s paper create --file paper.json
  %(prog)s sweep run-once
  %(prog)s session finalize --id 42
  %(prog)s result verify --session-id 42
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create any missing tables")

    # Paper commands
    paper_parser = subparsers.add_parser("paper", help="Question bank operations")
    paper_subparsers = paper_parser.add_subparsers(dest="paper_action")
    create_parser_ = paper_subparsers.add_parser("create", help="Load a question paper from JSON")
    create_parser_.add_argument("--file", "-f", required=True, help="Paper definition JSON file")

    # Sweep commands
    sweep_parser = subparsers.add_parser("sweep", help="Deadline sweep")
    sweep_subparsers = sweep_parser.add_subparsers(dest="sweep_action")
    sweep_subparsers.add_parser("run-once", help="Finalize every expired session now")

    # Session commands
    session_parser = subparsers.add_parser("session", help="Session operations")
    session_subparsers = session_parser.add_subparsers(dest="session_action")
    finalize_parser = session_subparsers.add_parser("finalize", help="Force-finalize a session")
    finalize_parser.add_argument("--id", "-i", type=int, required=True, help="Session ID")
    finalize_parser.add_argument(
        "--reason",
        default="ADMIN_FORCE",
        choices=["ADMIN_FORCE"],
        help="Finalization reason recorded on the result"
    )

    # Result commands
    result_parser = subparsers.add_parser("result", help="Result operations")
    result_subparsers = result_parser.add_subparsers(dest="result_action")
    verify_parser = result_subparsers.add_parser("verify", help="Recompute and compare the result hash")
    verify_parser.add_argument("--session-id", "-s", type=int, required=True, help="Session ID")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    command_map = {
        "db": DbCommand,
        "paper": PaperCommand,
        "sweep": SweepCommand,
        "session": SessionCommand,
        "result": ResultCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](dry_run=parsed.dry_run)
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
