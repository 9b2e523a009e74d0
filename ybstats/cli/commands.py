"""
Command handlers.

Path: ybstats/cli/commands.py

Handles: ybstats snapshot | print | diff | adhoc-diff | list

Builds a CommandRequest from parsed arguments, configures logging and
runs the operation. Fatal errors are printed to stderr and become exit
status 1.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from ybstats.collect.collector import configure_logging
from ybstats.core.config import get_config
from ybstats.errors import YbStatsError
from ybstats.jobs.runner import CommandRequest, StatsRunner
from ybstats.report.renderer import DEFAULT_LOG_SEVERITY, DEFAULT_MAX_WIDTH


logger = logging.getLogger(__name__)


def build_request(args) -> CommandRequest:
    """Map parsed arguments onto a CommandRequest; absent options stay None."""
    return CommandRequest(
        hosts=getattr(args, "hosts", None),
        ports=getattr(args, "ports", None),
        parallel=getattr(args, "parallel", None),
        hostname_match=getattr(args, "hostname_match", None),
        stat_name_match=getattr(args, "stat_name_match", None),
        table_name_match=getattr(args, "table_name_match", None),
        kinds=list(getattr(args, "kind", None) or []),
        uuid=getattr(args, "uuid", None),
        snapshot=getattr(args, "snapshot", None),
        begin=getattr(args, "begin", None),
        end=getattr(args, "end", None),
        comment=getattr(args, "comment", None),
        gauges=getattr(args, "gauges", False),
        unchanged=getattr(args, "unchanged", False),
        details=getattr(args, "details", False),
        log_severity=getattr(args, "log_severity", None) or DEFAULT_LOG_SEVERITY,
        max_width=_option(args, "max_width", DEFAULT_MAX_WIDTH),
        scope=getattr(args, "scope", None) or "all",
        disable_threads=getattr(args, "disable_threads", False),
    )


def _option(args, name: str, default):
    value = getattr(args, name, None)
    return default if value is None else value


def _log_level(args, configured: str):
    if args.verbose:
        return logging.DEBUG
    if args.silent:
        return logging.ERROR
    return configured


def handle_command(args, runner: Optional[StatsRunner] = None) -> int:
    """Run the operation selected by ``args.command``."""
    try:
        config = get_config(config_path=Path(args.config) if args.config else None)
        configure_logging(
            level=_log_level(args, config.logging.level),
            log_file=config.logging.file,
        )
        if runner is None:
            runner = StatsRunner(config, debug=args.verbose)

        request = build_request(args)
        handlers = {
            "snapshot": runner.snapshot,
            "print": runner.print_kinds,
            "diff": runner.snapshot_diff,
            "adhoc-diff": runner.adhoc_diff,
            "list": runner.list_snapshots,
        }
        return handlers[args.command](request)

    except YbStatsError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Fatal: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
