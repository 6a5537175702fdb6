from .diff import command_diff
from .dump import command_dump
from .view import command_view

__all__ = [
    "command_diff",
    "command_dump",
    "command_view",
]
