#!/usr/bin/env python3
"""
Tabroom Operator CLI

Usage:
    python -m tabroom.cli <command> [options]

Commands:
    db          Database operations (init)
    standings   Print team standings for a phase
    draw        Print the draw of a round

Environment:
    DATABASE_URL    SQLAlchemy async connection string
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import argparse
import logging
from typing import Optional

from tabroom.cli.commands import DbCommand, DrawCommand, StandingsCommand
from tabroom.config.settings import settings


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="tabroom",
        description="Debate tournament structure and draw engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s standings --phase 6f1c... --cumulative
  %(prog)s draw --round 0b7e...
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: LOG_LEVEL or INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create all tables")

    # Standings
    standings_parser = subparsers.add_parser("standings", help="Show phase standings")
    standings_parser.add_argument("--phase", "-p", required=True, help="Phase UUID")
    standings_parser.add_argument("--cumulative", action="store_true", help="Include predecessor phases")
    standings_parser.add_argument("--format", choices=["json", "text"], default="text", help="Output format")

    # Draw
    draw_parser = subparsers.add_parser("draw", help="Show a round's draw")
    draw_parser.add_argument("--round", "-r", required=True, help="Round UUID")
    draw_parser.add_argument("--format", choices=["json", "text"], default="text", help="Output format")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    commands = {
        "db": DbCommand,
        "standings": StandingsCommand,
        "draw": DrawCommand,
    }
    return commands[parsed.command]().execute(parsed)
