from __future__ import annotations

from .common import *  # noqa: F401,F403


def command_dump(args: argparse.Namespace) -> int:
    object_path = Path(args.object).resolve()
    if not object_path.is_file():
        raise AbiViewerError(f"Object file does not exist: {object_path}")

    dump_path = create_dump(
        object_path=object_path,
        output_dir=Path(args.output_dir).resolve(),
        dumper=args.dumper,
        library_version=args.lver or default_library_version(object_path),
        skip_cxx=bool(args.skip_cxx),
        public_headers=Path(args.public_headers).resolve() if args.public_headers else None,
        ignore_tags=Path(args.ignore_tags).resolve() if args.ignore_tags else None,
        kernel_export=bool(args.kernel_export),
        symbols_list=Path(args.symbols_list).resolve() if args.symbols_list else None,
    )

    abi = load_abi_dump(dump_path)
    print(f"ABI dump: {dump_path}")
    print(f"Library: {abi.library_name} {abi.library_version or ''}".rstrip())
    print(f"Arch: {abi.arch}")
    print(f"Symbols: {len(abi.symbols)}")
    print(f"Types: {len(abi.types)}")
    return 0
