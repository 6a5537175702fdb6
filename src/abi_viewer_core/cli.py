from __future__ import annotations

import argparse
import sys

from .core import ABI_DUMPER, AbiViewerError, configure_logging
from .commands import (
    command_diff,
    command_dump,
    command_view,
)


def add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dumper", default=ABI_DUMPER, help=f"ABI dumper executable (default: {ABI_DUMPER}).")
    parser.add_argument("--work-dir", help="Directory for dumps created from shared objects (default: temporary).")
    parser.add_argument("--config", help="Path to viewer config JSON.")
    parser.add_argument("--skip-std", action="store_true", help="Do not show symbols and types from the std namespace.")
    parser.add_argument("--show-private", action="store_true", help="Show types marked as private ABI.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="abi-viewer",
        description="Calling conventions and structural ABI diffs of abi-dumper output (view/diff/dump).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log progress messages to stderr.")

    sub = parser.add_subparsers(dest="command", required=True)

    view = sub.add_parser("view", help="Show calling sequences, stack frames and registers of a library.")
    view.add_argument("dump", help="ABI dump (JSON or Data::Dumper text), its directory, or a shared object.")
    view.add_argument("--symbol", help="Show only this symbol (mangled or short name).")
    view.add_argument("--output", help="Write view report JSON to path.")
    view.add_argument("--json", action="store_true", help="Print the view report as JSON.")
    add_input_arguments(view)
    view.set_defaults(func=command_view)

    diff = sub.add_parser("diff", help="Compare two ABI dumps of a library.")
    diff.add_argument("old", help="Old ABI dump, its directory, or a shared object.")
    diff.add_argument("new", help="New ABI dump, its directory, or a shared object.")
    diff.add_argument("--report", help="Write diff report JSON (with the change ledger) to path.")
    diff.add_argument("--markdown-report", help="Write diff report as Markdown.")
    diff.add_argument(
        "--no-count-unanchored-anonymous",
        action="store_true",
        help="Do not count anonymous types without an anchor as added or removed.",
    )
    diff.add_argument("--fail-on-changes", action="store_true", help="Exit with status 1 when the ABI changed.")
    add_input_arguments(diff)
    diff.set_defaults(func=command_diff)

    dump = sub.add_parser("dump", help="Create an ABI dump of a shared object with abi-dumper.")
    dump.add_argument("object", help="Shared object compiled with debug info.")
    dump.add_argument("--output-dir", required=True, help="Directory to write ABI.dump and dumper logs to.")
    dump.add_argument("--dumper", default=ABI_DUMPER, help=f"ABI dumper executable (default: {ABI_DUMPER}).")
    dump.add_argument("--lver", help="Library version (default: suffix after '.so.' in the file name).")
    dump.add_argument("--skip-cxx", action="store_true", help="Do not dump C++ symbols.")
    dump.add_argument("--public-headers", help="Dump only symbols declared in these headers.")
    dump.add_argument("--ignore-tags", help="File with macro tags to ignore in public headers.")
    dump.add_argument("--kernel-export", action="store_true", help="Dump symbols exported by the Linux kernel.")
    dump.add_argument("--symbols-list", help="File with the list of symbols to dump.")
    dump.set_defaults(func=command_dump)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(bool(args.verbose))

    try:
        return int(args.func(args))
    except AbiViewerError as exc:
        print(f"abi-viewer error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
