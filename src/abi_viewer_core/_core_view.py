from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_convention import *  # noqa: F401,F403
from ._core_compare import *  # noqa: F401,F403


def describe_symbol(abi: AbiDump, symbol: SymbolRecord) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "symbol": symbol.identity,
        "short_name": symbol.short_name,
        "kind": symbol.kind,
        "header": symbol.header,
    }
    if symbol.kind != "FUNC":
        entry["type"] = type_name(abi, symbol.return_type)
        entry["size"] = symbol.size
        return entry

    parts = calling_sequence(abi, symbol)
    entry["return_type"] = type_name(abi, symbol.return_type) or None
    entry["params"] = [
        {"position": param.position, "name": param.name, "type": type_name(abi, param.type_id)}
        for param in symbol.params
    ]
    entry["calling_sequence"] = [part.as_dict() for part in parts]
    entry["stack_frame"] = [slot.as_dict() for slot in stack_frame(abi, symbol, parts)]
    entry["registers"] = [part.as_dict() for part in register_usage(abi, symbol, parts)]
    return entry


def describe_type(abi: AbiDump, record: TypeRecord) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": record.type_id,
        "name": record.name,
        "kind": record.kind.value,
        "size": record.size,
    }
    if record.kind is TypeKind.ENUM:
        entry["values"] = [{"name": member.name, "value": member.value} for member in record.members]
        return entry

    entry["members"] = [
        {
            "name": member.name,
            "type": type_name(abi, member.type_id),
            "offset": member.offset,
            "size": member_size_label(abi, member),
        }
        for member in record.members
    ]
    if record.base_classes:
        entry["base_classes"] = [
            {"name": name, "position": position} for name, position in base_class_list(abi, record)
        ]
    if record.vtable:
        entry["vtable"] = [
            {"offset": offset, "entry": vtable_entry_text(record.vtable[offset])} for offset in sorted(record.vtable)
        ]
    return entry


def build_view_report(abi: AbiDump, symbol_filter: str | None = None, options: ViewerOptions | None = None) -> dict[str, Any]:
    """Calling sequence, stack frame and register usage of every bound symbol."""
    options = options or ViewerOptions()
    index = build_abi_index(abi)

    symbols: list[dict[str, Any]] = []
    warnings: list[str] = []
    for identity in sorted(visible_symbols(index, options)):
        symbol = index.symbol(identity)
        if symbol_filter and symbol_filter not in (identity, symbol.short_name):
            continue
        try:
            symbols.append(describe_symbol(abi, symbol))
        except AbiViewerError as exc:
            warnings.append(f"Symbol '{identity}' was skipped: {exc}")
            LOGGER.warning(warnings[-1])

    if symbol_filter and not symbols:
        raise AbiViewerError(f"Symbol '{symbol_filter}' is not found in {abi.label}.")

    types = [
        describe_type(abi, record)
        for _, record in sorted(abi.types.items(), key=lambda item: id_sort_key(item[0]))
        if select_type(record, options)
    ]

    return {
        "tool": {"name": "abi-viewer", "version": TOOL_VERSION},
        "library": abi.library_name,
        "version": abi.library_version,
        "arch": abi.arch,
        "word_size": abi.word_size,
        "symbols": symbols,
        "types": [] if symbol_filter else types,
        "warnings": warnings,
    }


def print_view_report(report: dict[str, Any]) -> None:
    print(f"Library: {report.get('library')} {report.get('version') or ''}".rstrip())
    print(f"Arch: {report.get('arch')}")
    for entry in report.get("symbols", []):
        print("")
        print(entry["symbol"])
        if "calling_sequence" not in entry:
            print(f"  {entry.get('kind')} {entry.get('type')} ({entry.get('size')} bytes)")
            continue
        print("  Calling sequence:")
        for part in entry["calling_sequence"]:
            passed = part["passed"] or "?"
            print(f"    {part['subject']:<24} {part['type']:<24} {part['size']:>4}  {passed}")
        if entry["stack_frame"]:
            print("  Stack frame:")
            for slot in entry["stack_frame"]:
                print(f"    {slot['offset']!s:>6}  {slot['subject']:<24} {slot['size']:>4}")
        if entry["registers"]:
            print("  Registers:")
            for part in entry["registers"]:
                print(f"    {part['passed']:<12} {part['subject']}")

    for entry in report.get("types", []):
        print("")
        print(f"{entry['name']} ({entry['kind']}, {entry['size']} bytes)")
        for base in entry.get("base_classes", []):
            print(f"  base {base['position']}: {base['name']}")
        for member in entry.get("members", []):
            print(f"    {member['offset']:>6}  {member['name']:<24} {member['type']:<24} {member['size']:>4}")
        for value in entry.get("values", []):
            print(f"    {value['name']} = {value['value']}")
        for slot in entry.get("vtable", []):
            print(f"  vtable {slot['offset']:>6}  {slot['entry']}")

    warnings = report.get("warnings", [])
    if warnings:
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")
