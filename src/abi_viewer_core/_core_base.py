#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

TOOL_VERSION = "1.0.0"
ABI_DUMPER = "abi-dumper"
ABI_DUMPER_MIN_VERSION = "1.4"
SUPPORTED_ARCHS = ("x86", "x86_64")
WORD_SIZE = {
    "x86": 4,
    "x86_64": 8,
}
BYTE = 8

LOGGER = logging.getLogger("abi_viewer")


class AbiViewerError(Exception):
    pass


@dataclass(frozen=True)
class ViewerOptions:
    skip_std: bool = False
    show_private: bool = False
    count_unanchored_anonymous: bool = True
    fail_on_changes: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "skip_std": self.skip_std,
            "show_private": self.show_private,
            "count_unanchored_anonymous": self.count_unanchored_anonymous,
            "fail_on_changes": self.fail_on_changes,
        }


OPTION_KEYS = tuple(ViewerOptions().as_dict().keys())


def compare_versions(left: str, right: str) -> int:
    """Compare two dotted-numeric versions, returning -1, 0 or 1.

    Non-numeric parts compare as zero; a version that is a strict prefix of
    the other is the older one.
    """
    left = str(left).strip()
    right = str(right).strip()
    if left == right:
        return 0

    def _parts(value: str) -> list[int]:
        out: list[int] = []
        for item in value.split("."):
            match = re.match(r"\d+", item)
            out.append(int(match.group(0)) if match else 0)
        return out

    left_parts = _parts(left)
    right_parts = _parts(right)
    for lhs, rhs in zip(left_parts, right_parts):
        if lhs < rhs:
            return -1
        if lhs > rhs:
            return 1
    if len(left_parts) < len(right_parts):
        return -1
    if len(left_parts) > len(right_parts):
        return 1
    return 0


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise AbiViewerError(f"Unable to read JSON file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise AbiViewerError(f"Invalid JSON in '{path}': {exc}") from exc


def write_json(path: Path, value: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def get_schema_path(kind: str) -> Path:
    base = Path(__file__).resolve().parents[2] / "schemas"
    mapping = {
        "config": base / "config.schema.json",
        "dump": base / "abi_dump.schema.json",
        "report": base / "report.schema.json",
    }
    if kind not in mapping:
        raise AbiViewerError(f"Unknown schema kind: {kind}")
    return mapping[kind]


def validate_with_jsonschema_if_available(kind: str, payload: dict[str, Any]) -> tuple[bool, str | None]:
    schema_path = get_schema_path(kind)
    if not schema_path.exists():
        return False, f"schema file not found: {schema_path}"

    try:
        import jsonschema  # type: ignore
    except ImportError:
        return False, "jsonschema package is not installed"

    schema_payload = load_json(schema_path)
    try:
        jsonschema.validate(payload, schema_payload)
    except jsonschema.ValidationError as exc:
        raise AbiViewerError(f"{kind} failed JSON schema validation: {exc.message}") from exc
    return True, None


def require_keys(obj: dict[str, Any], keys: list[str], label: str) -> None:
    missing = [key for key in keys if key not in obj]
    if missing:
        raise AbiViewerError(f"{label} is missing required keys: {', '.join(missing)}")


def validate_config_payload(payload: dict[str, Any]) -> None:
    if not isinstance(payload, dict):
        raise AbiViewerError("config root must be an object")
    options = payload.get("options")
    if options is None:
        return
    if not isinstance(options, dict):
        raise AbiViewerError("config.options must be an object when specified")
    for key, value in options.items():
        if key not in OPTION_KEYS:
            raise AbiViewerError(f"config.options.{key} is not a known option ({', '.join(OPTION_KEYS)})")
        if not isinstance(value, bool):
            raise AbiViewerError(f"config.options.{key} must be boolean when specified")
    validate_with_jsonschema_if_available("config", payload)


def load_config(path: Path) -> dict[str, Any]:
    config = load_json(path)
    validate_config_payload(config)
    return config


def build_viewer_options(config: dict[str, Any] | None = None, **overrides: bool | None) -> ViewerOptions:
    values = ViewerOptions().as_dict()
    if config:
        options = config.get("options")
        if isinstance(options, dict):
            values.update({key: bool(value) for key, value in options.items() if key in OPTION_KEYS})
    for key, value in overrides.items():
        if key not in OPTION_KEYS:
            raise AbiViewerError(f"Unknown viewer option: {key}")
        if value is not None:
            values[key] = bool(value)
    return ViewerOptions(**values)


def configure_logging(verbose: bool = False) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    LOGGER.handlers[:] = [handler]
    LOGGER.setLevel(logging.INFO if verbose else logging.WARNING)
    LOGGER.propagate = False
