from __future__ import annotations

import argparse
import tempfile

from ..core import *  # noqa: F401,F403


def resolve_dump_input(value: str, work_dir: Path | None = None, dumper: str = ABI_DUMPER) -> AbiDump:
    """Load an ABI dump, creating it first when ``value`` names a shared object."""
    path = Path(value).resolve()
    if not path.exists():
        raise AbiViewerError(f"Input does not exist: {path}")

    if path.is_file() and is_elf_object(path):
        if work_dir is None:
            work_dir = Path(tempfile.mkdtemp(prefix="abi-viewer-"))
        output_dir = work_dir / path.name
        LOGGER.info("Input %s is a shared object, dumping it to %s", path, output_dir)
        path = create_dump(path, output_dir, dumper=dumper, library_version=default_library_version(path))

    return load_abi_dump(path)


def options_from_args(args: argparse.Namespace) -> ViewerOptions:
    config = load_config(Path(args.config).resolve()) if getattr(args, "config", None) else None
    return build_viewer_options(
        config,
        skip_std=True if getattr(args, "skip_std", False) else None,
        show_private=True if getattr(args, "show_private", False) else None,
        count_unanchored_anonymous=False if getattr(args, "no_count_unanchored_anonymous", False) else None,
        fail_on_changes=True if getattr(args, "fail_on_changes", False) else None,
    )
