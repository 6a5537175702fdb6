from __future__ import annotations

from .common import *  # noqa: F401,F403


def command_view(args: argparse.Namespace) -> int:
    options = options_from_args(args)
    work_dir = Path(args.work_dir).resolve() if args.work_dir else None
    abi = resolve_dump_input(args.dump, work_dir=work_dir, dumper=args.dumper)
    report = build_view_report(abi, symbol_filter=args.symbol, options=options)

    if args.output:
        write_json(Path(args.output).resolve(), report)
    if args.json:
        print(json.dumps(report, indent=2, sort_keys=True))
    else:
        print_view_report(report)
    return 0
