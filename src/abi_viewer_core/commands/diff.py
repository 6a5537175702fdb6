from __future__ import annotations

from .common import *  # noqa: F401,F403


def command_diff(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    work_dir = Path(args.work_dir).resolve() if args.work_dir else None
    old = resolve_dump_input(args.old, work_dir=work_dir / "old" if work_dir else None, dumper=args.dumper)
    new = resolve_dump_input(args.new, work_dir=work_dir / "new" if work_dir else None, dumper=args.dumper)

    result = compare_dumps(old, new, options)
    report = build_report(result, include_ledger=bool(args.report))

    if args.report:
        write_json(Path(args.report).resolve(), report)
    if args.markdown_report:
        write_markdown_report(Path(args.markdown_report).resolve(), report)

    print_report(report)
    if options.fail_on_changes and result.has_changes:
        return 1
    return 0
