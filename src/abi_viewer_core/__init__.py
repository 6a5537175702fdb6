"""ABI viewer: calling conventions and structural diffs of abi-dumper output."""

from ._core_base import TOOL_VERSION as __version__  # noqa: F401
