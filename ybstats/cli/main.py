"""
ybstats CLI - Main entry point.

Usage:
    ybstats snapshot [--comment TEXT]
    ybstats print --kind KIND [--snapshot N]
    ybstats diff -b N -e M
    ybstats adhoc-diff [--scope all|metrics|nonmetrics]
    ybstats list
"""

import argparse
import sys
from typing import List, Optional

from ybstats import __version__
from ybstats.core.kinds import EndpointKind


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    from ybstats.cli.commands import handle_command

    return handle_command(args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ybstats",
        description="Capture, store and compare YugabyteDB cluster statistics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  snapshot    Capture all kinds from all hosts into a new numbered snapshot
  print       Print kinds from a snapshot, or live
  diff        Compare two snapshots
  adhoc-diff  Capture live twice and compare, without storing
  list        List snapshots

Examples:
  ybstats --hosts 10.0.0.1,10.0.0.2 --parallel 4 snapshot --comment "before upgrade"
  ybstats diff -b 1 -e 2 --stat-name-match 'rows_inserted'
  ybstats print --kind tablet-servers
  ybstats adhoc-diff --scope metrics --gauges
        """,
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("--config", help="Config file (default: ~/.ybstats/config.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--silent", action="store_true", help="Only log errors")

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")

    snapshot_parser = subparsers.add_parser(
        "snapshot",
        help="Capture a new snapshot",
        description="Capture every kind from every host into a new numbered snapshot",
    )
    _add_target_arguments(snapshot_parser)
    snapshot_parser.add_argument("--comment", help="Comment stored in the catalog")
    snapshot_parser.add_argument("--disable-threads", action="store_true",
                                 help="Leave the threads kind out of the snapshot")
    _add_kind_argument(snapshot_parser)

    print_parser = subparsers.add_parser(
        "print",
        help="Print kinds from a snapshot or live",
    )
    _add_target_arguments(print_parser)
    _add_kind_argument(print_parser)
    _add_filter_arguments(print_parser)
    print_parser.add_argument("--snapshot", "-s", type=int,
                              help="Snapshot number (default: fetch live)")
    print_parser.add_argument("--uuid", help="Table or tablet uuid for table-detail/tablet-detail")

    diff_parser = subparsers.add_parser(
        "diff",
        help="Compare two snapshots",
    )
    diff_parser.add_argument("--begin", "-b", type=int, required=True, help="Begin snapshot number")
    diff_parser.add_argument("--end", "-e", type=int, required=True, help="End snapshot number")
    _add_kind_argument(diff_parser)
    _add_filter_arguments(diff_parser)
    _add_diff_arguments(diff_parser)

    adhoc_parser = subparsers.add_parser(
        "adhoc-diff",
        help="Capture live twice and compare",
    )
    _add_target_arguments(adhoc_parser)
    _add_kind_argument(adhoc_parser)
    _add_filter_arguments(adhoc_parser)
    _add_diff_arguments(adhoc_parser)
    adhoc_parser.add_argument("--scope", choices=["all", "metrics", "nonmetrics"], default="all",
                              help="Kinds to compare when --kind is not given (default: all)")
    adhoc_parser.add_argument("--uuid", help="Table or tablet uuid for table-detail/tablet-detail")

    subparsers.add_parser(
        "list",
        help="List snapshots",
    )

    return parser


def _add_target_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--hosts", "-H", help="Comma-separated hosts (overrides config)")
    parser.add_argument("--ports", "-P", help="Comma-separated ports (overrides config)")
    parser.add_argument("--parallel", "-p", type=int, help="Concurrent fetches (overrides config)")


def _add_kind_argument(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--kind", "-k",
        action="append",
        default=[],
        choices=[k.value for k in EndpointKind],
        metavar="KIND",
        help="Restrict to a kind (repeatable): " + ", ".join(k.value for k in EndpointKind),
    )


def _add_filter_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--hostname-match", help="Regex on host:port")
    parser.add_argument("--stat-name-match", help="Regex on metric/statistic name")
    parser.add_argument("--table-name-match", help="Regex on table name")
    parser.add_argument("--details", "-d", action="store_true",
                        help="Per-entity rows and all fields")
    parser.add_argument("--log-severity", default="WEF",
                        help="Log severities to show (default: WEF)")
    parser.add_argument("--max-width", type=int,
                        help="Cut cells wider than this, except the last column (default: 80)")


def _add_diff_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--gauges", "-g", action="store_true", help="Include gauge values")
    parser.add_argument("--unchanged", action="store_true", help="Include unchanged values")


if __name__ == "__main__":
    sys.exit(main())
