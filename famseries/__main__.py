"""Command-line entry for famseries.

Subcommands:
  expand    print the virtual instances of one series as JSON
  preview   summarize a rule and list its first occurrences
  generate  run the cache-warming batch job for a family
  export    write a family's series as an iCalendar file
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import NoReturn, Optional

from .config import Config, load_config
from .dateutils import to_date, today
from .engine import SeriesEngine
from .exceptions import SeriesError
from .ics_export import export_calendar
from .legacy_generator import BatchGenerator
from .logging_config import configure_logging
from .rrule_converter import to_rrule
from .store import InMemorySeriesStore, JsonSeriesStore, SeriesStore
from .summary import Preset, preview, rule_from_preset
from .validation import diagnose_rule, parse_rule


def _date_arg(value: str) -> date:
    try:
        return to_date(value)
    except (TypeError, ValueError) as e:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r}") from e


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the famseries CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="famseries",
        description="famseries - recurring task and event series engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m famseries --store data.json expand --series-id abc --start 2024-01-01 --end 2024-01-31
  python -m famseries preview --preset school_days --start 2024-01-01 --count 5
  python -m famseries --store data.json generate --family-id fam1 --days 14
  python -m famseries --store data.json export --family-id fam1 --output family.ics
        """,
    )
    parser.add_argument("--config", metavar="PATH", help="YAML config file (default: $FAMSERIES_CONFIG)")
    parser.add_argument("--store", metavar="PATH", help="JSON store file (overrides store_path from config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    expand_cmd = sub.add_parser("expand", help="Print the instances of one series")
    expand_cmd.add_argument("--series-id", required=True)
    expand_cmd.add_argument("--type", dest="series_type", choices=["task", "event"], default="task")
    expand_cmd.add_argument("--start", type=_date_arg, help="First date (default: today)")
    expand_cmd.add_argument("--end", type=_date_arg, help="Last date (default: start + default window)")
    expand_cmd.add_argument(
        "--split-assignees", action="store_true", help="One instance per assignee for 'everyone' tasks"
    )

    preview_cmd = sub.add_parser("preview", help="Summarize a rule and list its first dates")
    source = preview_cmd.add_mutually_exclusive_group(required=True)
    source.add_argument("--rule", help="Recurrence rule as JSON")
    source.add_argument("--preset", choices=[p.value for p in Preset])
    preview_cmd.add_argument("--start", type=_date_arg, help="Series start (default: today)")
    preview_cmd.add_argument("--count", type=int, default=3)

    generate_cmd = sub.add_parser("generate", help="Run the batch row generator for a family")
    generate_cmd.add_argument("--family-id", required=True)
    generate_cmd.add_argument("--start", type=_date_arg, help="Window start (default: today)")
    generate_cmd.add_argument("--days", type=int, help="Window length in days (default: from config)")

    export_cmd = sub.add_parser("export", help="Export a family's series as iCalendar")
    export_cmd.add_argument("--family-id", required=True)
    export_cmd.add_argument("--type", dest="series_type", choices=["task", "event"])
    export_cmd.add_argument("--output", metavar="FILE", help="Write to FILE instead of stdout")

    return parser


def _open_store(args: argparse.Namespace, cfg: Config) -> SeriesStore:
    path = args.store or cfg.store_path
    return JsonSeriesStore(path) if path else InMemorySeriesStore()


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _cmd_expand(args: argparse.Namespace, cfg: Config) -> int:
    engine = SeriesEngine(_open_store(args, cfg), cfg)
    instances = engine.instances_for(
        args.series_type,
        args.series_id,
        args.start or today(),
        args.end,
        split_by_assignee=args.split_assignees,
    )
    _print_json([i.model_dump(mode="json") for i in instances])
    return 0


def _cmd_preview(args: argparse.Namespace, cfg: Config) -> int:
    start = args.start or today()
    rule = parse_rule(args.rule) if args.rule else rule_from_preset(args.preset, start)
    result = preview(rule, start, count=args.count).to_dict()
    result["rrule"] = to_rrule(rule, start)
    result["diagnostics"] = diagnose_rule(rule, start).to_dict()
    _print_json(result)
    return 0


def _cmd_generate(args: argparse.Namespace, cfg: Config) -> int:
    start = args.start or today()
    days = args.days or cfg.default_window_days
    generator = BatchGenerator(_open_store(args, cfg), config=cfg)
    report = generator.run(args.family_id, start, start + timedelta(days=days - 1))
    _print_json(report.to_dict())
    return 0 if report.ok else 1


def _cmd_export(args: argparse.Namespace, cfg: Config) -> int:
    data = export_calendar(_open_store(args, cfg), args.family_id, args.series_type, cfg)
    if args.output:
        Path(args.output).write_bytes(data)
    else:
        sys.stdout.write(data.decode("utf-8"))
    return 0


COMMANDS = {
    "expand": _cmd_expand,
    "preview": _cmd_preview,
    "generate": _cmd_generate,
    "export": _cmd_export,
}


def run(argv: Optional[list[str]] = None) -> int:
    """Parse ``argv`` and run the selected command. Returns the exit code."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    configure_logging(debug_mode=args.debug, level_name=cfg.log_level)

    try:
        return COMMANDS[args.command](args, cfg)
    except SeriesError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


def main() -> NoReturn:
    """Run the famseries CLI and exit with its status code."""
    sys.exit(run())


if __name__ == "__main__":
    main()
