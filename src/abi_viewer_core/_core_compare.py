from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403
from ._core_convention import *  # noqa: F401,F403
from ._core_align import *  # noqa: F401,F403
from ._core_ledger import *  # noqa: F401,F403

_NESTED_SUBJECT_RE = re.compile(r"\w+\.\w+\.\w+")
_MEMBER_PART_RE = re.compile(r"\w+\.\w+")


@dataclass
class DiffResult:
    old_index: AbiIndex
    new_index: AbiIndex
    options: ViewerOptions
    ledger: ChangeLedger = field(default_factory=ChangeLedger)
    added_symbols: set[str] = field(default_factory=set)
    removed_symbols: set[str] = field(default_factory=set)
    changed_symbols: set[str] = field(default_factory=set)
    added_types: set[str] = field(default_factory=set)
    removed_types: set[str] = field(default_factory=set)
    changed_types: set[str] = field(default_factory=set)
    added_types_all: set[str] = field(default_factory=set)
    removed_types_all: set[str] = field(default_factory=set)
    mapped_types: dict[str, str] = field(default_factory=dict)
    mapped_types_reverse: dict[str, str] = field(default_factory=dict)
    unanchored_anonymous: dict[str, set[str]] = field(default_factory=lambda: {"removed": set(), "added": set()})
    type_alignments: dict[tuple[str, str], AlignmentMapping] = field(default_factory=dict)
    symbol_alignments: dict[str, AlignmentMapping] = field(default_factory=dict)
    type_changes: dict[str, list[str]] = field(default_factory=dict)
    symbol_changes: dict[str, list[str]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def old(self) -> AbiDump:
        return self.old_index.abi

    @property
    def new(self) -> AbiDump:
        return self.new_index.abi

    @property
    def has_changes(self) -> bool:
        return bool(
            self.added_symbols
            or self.removed_symbols
            or self.changed_symbols
            or self.added_types
            or self.removed_types
            or self.changed_types
        )

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        LOGGER.warning(message)


def select_type(record: TypeRecord, options: ViewerOptions) -> bool:
    if not record.complete:
        return False
    if record.private and not options.show_private:
        return False
    if record.kind not in SELECTABLE_KINDS:
        return False
    if options.skip_std and is_std_type(record):
        return False
    return True


def visible_symbols(index: AbiIndex, options: ViewerOptions, bound_only: bool = True) -> set[str]:
    out: set[str] = set()
    for identity in index.symbol_ids:
        symbol = index.symbol(identity)
        if symbol is None or (bound_only and not symbol.bind):
            continue
        if options.skip_std and is_std_symbol(identity):
            continue
        out.add(identity)
    return out


def find_anonymous_pair(index: AbiIndex, other: AbiIndex, type_id: str) -> str | None:
    """Locate the counterpart of an anonymous type through a named container.

    Containers are tried in ascending id order and their fields in name
    order; the first container also present in ``other`` with a field of
    the same name gives the pair.
    """
    usage = index.type_usage.get(type_id, {})
    for container_id in sorted(usage, key=id_sort_key):
        container = index.abi.types.get(container_id)
        if container is None:
            continue
        counterpart = other.type_by_name(container.name)
        if counterpart is None:
            continue
        for field_name in sorted(usage[container_id]):
            for member in counterpart.members:
                if member.name == field_name and member.type_id is not None:
                    return resolve_basic_type(other.abi, member.type_id)
    return None


def _note_unpaired(result: DiffResult, record: TypeRecord, side: str, bucket: set[str]) -> None:
    if not select_type(record, result.options):
        return
    if record.is_anonymous:
        result.unanchored_anonymous[side].add(record.name)
        LOGGER.warning("Anonymous type %s (%s) has no anchor in the other version", record.name, side)
        if not result.options.count_unanchored_anonymous:
            return
    bucket.add(record.name)


def detect_added_removed(result: DiffResult) -> None:
    old_index = result.old_index
    new_index = result.new_index

    old_symbols = visible_symbols(old_index, result.options, bound_only=False)
    new_symbols = visible_symbols(new_index, result.options, bound_only=False)
    result.removed_symbols = old_symbols - new_symbols
    result.added_symbols = new_symbols - old_symbols

    for name in sorted(old_index.type_ids):
        type_id = old_index.type_ids[name]
        record = result.old.types[type_id]
        pair = new_index.type_ids.get(name)
        if pair is None and record.is_anonymous:
            pair = find_anonymous_pair(old_index, new_index, type_id)
        if pair is not None:
            result.mapped_types[type_id] = pair
            result.mapped_types_reverse.setdefault(pair, type_id)
            continue
        result.removed_types_all.add(name)
        _note_unpaired(result, record, "removed", result.removed_types)

    for name in sorted(new_index.type_ids):
        type_id = new_index.type_ids[name]
        record = result.new.types[type_id]
        if name in old_index.type_ids or type_id in result.mapped_types_reverse:
            continue
        if record.is_anonymous:
            pair = find_anonymous_pair(new_index, old_index, type_id)
            if pair is not None:
                old_record = result.old.types.get(pair)
                if old_record is not None and pair not in result.mapped_types:
                    # anchored from this side only: take the old type back out of the removed sets
                    old_name = old_record.name
                    result.removed_types_all.discard(old_name)
                    result.removed_types.discard(old_name)
                    result.unanchored_anonymous["removed"].discard(old_name)
                    result.mapped_types[pair] = type_id
                result.mapped_types_reverse[type_id] = pair
                continue
        result.added_types_all.add(name)
        _note_unpaired(result, record, "added", result.added_types)


def record_alignment(
    ledger: ChangeLedger, kind: EntityKind, old_id: str, new_id: str, mapping: AlignmentMapping
) -> None:
    for old_position, new_position in mapping.forward.items():
        ledger.record(kind, 1, old_id, old_position, StatusField.MAPPED, new_position)
        ledger.record(kind, 2, new_id, new_position, StatusField.MAPPED, old_position)
    for position in mapping.removed:
        ledger.record(kind, 1, old_id, position, StatusField.REMOVED)
    for position in mapping.added:
        ledger.record(kind, 2, new_id, position, StatusField.ADDED)
    for position, relative in mapping.relative_position.items():
        ledger.record(kind, 2, new_id, position, StatusField.MAPPED_REL, relative)


def align_type_pair(result: DiffResult, old_type_id: str, new_type_id: str) -> AlignmentMapping:
    key = (old_type_id, new_type_id)
    cached = result.type_alignments.get(key)
    if cached is not None:
        return cached

    old_record = get_type(result.old, old_type_id)
    new_record = get_type(result.new, new_type_id)
    if old_record is None or new_record is None:
        mapping = AlignmentMapping()
    elif old_record.kind is TypeKind.ENUM:
        mapping = align_enums(old_record, new_record)
    else:
        mapping = align_members(result.old, old_record, result.new, new_record)

    record_alignment(result.ledger, EntityKind.TYPE, old_type_id, new_type_id, mapping)
    result.type_alignments[key] = mapping
    return mapping


def member_size_label(abi: AbiDump, member: MemberRecord) -> str:
    if member.bitfield is not None:
        return f"{member.bitfield}/{BYTE}"
    return str(type_size(abi, member.type_id))


def format_bit_offset(bits: int) -> str:
    if bits % BYTE == 0:
        return str(bits // BYTE)
    return f"{bits // BYTE}+{bits % BYTE}/{BYTE}"


def compare_type(result: DiffResult, old_type_id: str, new_type_id: str) -> list[str]:
    old_abi = result.old
    new_abi = result.new
    old_record = old_abi.types[old_type_id]
    new_record = new_abi.types[new_type_id]
    mapping = align_type_pair(result, old_type_id, new_type_id)
    is_enum = old_record.kind is TypeKind.ENUM
    label = "value" if is_enum else "member"

    reasons: list[str] = []
    for position in mapping.removed:
        member = old_record.member_at(position)
        reasons.append(f"{label} '{member.name if member else position}' removed")
    for position in mapping.added:
        member = new_record.member_at(position)
        reasons.append(f"{label} '{member.name if member else position}' added")

    for old_position, new_position in sorted(mapping.forward.items()):
        old_member = old_record.member_at(old_position)
        new_member = new_record.member_at(new_position)
        if old_member is None or new_member is None:
            continue
        name = old_member.name
        if old_member.name != new_member.name:
            reasons.append(f"{label} '{old_member.name}' renamed to '{new_member.name}'")

        if is_enum:
            if old_member.value != new_member.value:
                reasons.append(f"value of '{name}' changed from {old_member.value} to {new_member.value}")
            continue

        if mapping.is_moved(old_position):
            reasons.append(
                f"member '{name}' moved from position {mapping.old_rank(old_position)} "
                f"to {mapping.relative_position.get(new_position, 0)}"
            )

        old_member_type = type_name(old_abi, old_member.type_id)
        new_member_type = type_name(new_abi, new_member.type_id)
        if old_member_type != new_member_type and result.mapped_types.get(old_member.type_id or "") != new_member.type_id:
            result.ledger.record(EntityKind.TYPE, 1, old_type_id, old_position, StatusField.CHANGED_TYPE)
            result.ledger.record(EntityKind.TYPE, 2, new_type_id, new_position, StatusField.CHANGED_TYPE)
            reasons.append(f"type of member '{name}' changed from '{old_member_type}' to '{new_member_type}'")

        old_size = member_size_label(old_abi, old_member)
        new_size = member_size_label(new_abi, new_member)
        if old_size != new_size:
            reasons.append(f"size of member '{name}' changed from {old_size} to {new_size}")

        old_bits = old_member.offset * BYTE + bitfield_offset(old_record, old_position)
        new_bits = new_member.offset * BYTE + bitfield_offset(new_record, new_position)
        if old_bits != new_bits:
            reasons.append(
                f"offset of member '{name}' changed from {format_bit_offset(old_bits)} to {format_bit_offset(new_bits)}"
            )

    reasons.extend(compare_base_classes(old_abi, old_record, new_abi, new_record))
    reasons.extend(compare_vtables(old_record, new_record))

    if old_record.size != new_record.size:
        reasons.append(f"size changed from {old_record.size} to {new_record.size}")
    return reasons


def compare_base_classes(old_abi: AbiDump, old_record: TypeRecord, new_abi: AbiDump, new_record: TypeRecord) -> list[str]:
    old_bases = dict(base_class_list(old_abi, old_record))
    new_bases = dict(base_class_list(new_abi, new_record))
    reasons: list[str] = []
    for name, position in old_bases.items():
        if name not in new_bases:
            reasons.append(f"base class '{name}' removed")
        elif new_bases[name] != position:
            reasons.append(f"position of base class '{name}' changed from {position} to {new_bases[name]}")
    for name in new_bases:
        if name not in old_bases:
            reasons.append(f"base class '{name}' added")
    return reasons


def compare_vtables(old_record: TypeRecord, new_record: TypeRecord) -> list[str]:
    reasons: list[str] = []
    for offset in sorted(set(old_record.vtable) | set(new_record.vtable)):
        old_entry = old_record.vtable.get(offset)
        new_entry = new_record.vtable.get(offset)
        if new_entry is None:
            reasons.append(f"vtable entry at offset {offset} removed ('{vtable_entry_text(old_entry)}')")
        elif old_entry is None:
            reasons.append(f"vtable entry at offset {offset} added ('{vtable_entry_text(new_entry)}')")
        elif vtable_entry_text(old_entry) != vtable_entry_text(new_entry):
            reasons.append(
                f"vtable entry at offset {offset} changed from "
                f"'{vtable_entry_text(old_entry)}' to '{vtable_entry_text(new_entry)}'"
            )
    return reasons


def is_member_subject(subject: str) -> bool:
    return bool(_MEMBER_PART_RE.search(subject))


def substitute_prefix(subject: str, old_prefix: str, new_prefix: str) -> str:
    if subject == old_prefix:
        return new_prefix
    if subject.startswith(old_prefix + "."):
        return new_prefix + subject[len(old_prefix) :]
    return subject


class _PartComparison:
    """Pairs the parts of one parameter (or of the return value) across versions."""

    def __init__(self, result: DiffResult, old_symbol: SymbolRecord, new_symbol: SymbolRecord) -> None:
        self.result = result
        self.old_id = old_symbol.symbol_id
        self.new_id = new_symbol.symbol_id
        self.reasons: list[str] = []

    def removed(self, part: ConventionPart) -> None:
        self.result.ledger.record(EntityKind.PART, 1, self.old_id, part.subject, StatusField.REMOVED)

    def added(self, part: ConventionPart) -> None:
        self.result.ledger.record(EntityKind.PART, 2, self.new_id, part.subject, StatusField.ADDED)

    def pair(self, old: ConventionPart, new: ConventionPart) -> None:
        ledger = self.result.ledger
        ledger.record(EntityKind.PART, 1, self.old_id, old.subject, StatusField.MAPPED, new.subject)
        ledger.record(EntityKind.PART, 2, self.new_id, new.subject, StatusField.MAPPED, old.subject)

        if old.subject != new.subject:
            self.reasons.append(f"'{old.subject}' renamed to '{new.subject}'")
        if old.type_name != new.type_name:
            ledger.record(EntityKind.PART, 1, self.old_id, old.subject, StatusField.CHANGED_TYPE)
            ledger.record(EntityKind.PART, 2, self.new_id, new.subject, StatusField.CHANGED_TYPE)
            self.reasons.append(f"type of '{old.subject}' changed from '{old.type_name}' to '{new.type_name}'")
        if old.size_label != new.size_label:
            self.reasons.append(f"size of '{old.subject}' changed from {old.size_label} to {new.size_label}")

        old_passed = old.location.render()
        new_passed = new.location.render()
        if old_passed != new_passed:
            self.reasons.append(f"'{old.subject}' is passed in '{new_passed}' instead of '{old_passed}'")
            if old.location.is_stack != new.location.is_stack:
                self.removed(old)
                self.added(new)

    def pair_by_subject(self, old_parts: list[ConventionPart], new_parts: list[ConventionPart], targets: dict[str, str | None]) -> None:
        new_by_subject = {part.subject: part for part in new_parts}
        paired: set[str] = set()
        for part in old_parts:
            target = targets.get(part.subject)
            if target is not None and target in new_by_subject and target not in paired:
                self.pair(part, new_by_subject[target])
                paired.add(target)
            else:
                self.removed(part)
                self.reasons.append(f"'{part.subject}' is no longer passed")
        for part in new_parts:
            if part.subject not in paired:
                self.added(part)
                self.reasons.append(f"'{part.subject}' is now passed")

    def compare(
        self,
        old_parts: list[ConventionPart],
        new_parts: list[ConventionPart],
        old_prefix: str,
        new_prefix: str,
        old_type_id: str | None,
        new_type_id: str | None,
    ) -> list[str]:
        if not old_parts and not new_parts:
            return self.reasons

        old_complete = len(old_parts) == 1 and not is_member_subject(old_parts[0].subject)
        new_complete = len(new_parts) == 1 and not is_member_subject(new_parts[0].subject)

        if old_complete or new_complete:
            if len(old_parts) == 1 and len(new_parts) == 1:
                self.pair(old_parts[0], new_parts[0])
                return self.reasons
            if old_complete and new_parts:
                self.reasons.append(f"'{old_prefix}' became partially passed in registers")
            elif new_complete and old_parts:
                self.reasons.append(f"'{new_prefix}' became completely passed")
            for part in old_parts:
                self.removed(part)
            for part in new_parts:
                self.added(part)
            if not old_parts:
                self.reasons.append(f"'{new_prefix}' is now passed")
            elif not new_parts:
                self.reasons.append(f"'{old_prefix}' is no longer passed")
            return self.reasons

        old_abi = self.result.old
        new_abi = self.result.new
        old_pure = resolve_pure_type(old_abi, old_type_id)
        new_pure = resolve_pure_type(new_abi, new_type_id)
        same_type = (
            old_pure is not None
            and new_pure is not None
            and type_name(old_abi, old_pure) == type_name(new_abi, new_pure)
        )
        nested = any(_NESTED_SUBJECT_RE.search(part.subject) for part in old_parts)

        targets: dict[str, str | None] = {}
        if same_type and not nested:
            mapping = align_type_pair(self.result, old_pure, new_pure)
            new_record = get_type(new_abi, new_pure)
            for part in old_parts:
                if not part.subject.startswith(old_prefix + "."):
                    targets[part.subject] = substitute_prefix(part.subject, old_prefix, new_prefix)
                    continue
                head, suffix = split_member_path(part.subject[len(old_prefix) + 1 :])
                old_position = member_position(old_abi, old_pure, head)
                new_position = mapping.forward.get(old_position) if old_position is not None else None
                new_member = new_record.member_at(new_position) if new_record and new_position is not None else None
                targets[part.subject] = f"{new_prefix}.{new_member.name}{suffix}" if new_member is not None else None
        else:
            for part in old_parts:
                targets[part.subject] = substitute_prefix(part.subject, old_prefix, new_prefix)

        self.pair_by_subject(old_parts, new_parts, targets)
        return self.reasons


def _group_by_position(parts: list[ConventionPart]) -> dict[int | None, list[ConventionPart]]:
    out: dict[int | None, list[ConventionPart]] = {}
    for part in parts:
        out.setdefault(part.position, []).append(part)
    return out


def compare_symbol(result: DiffResult, identity: str) -> list[str]:
    old_abi = result.old
    new_abi = result.new
    old_symbol = result.old_index.symbol(identity)
    new_symbol = result.new_index.symbol(identity)
    if old_symbol is None or new_symbol is None:
        return []

    reasons: list[str] = []
    if old_symbol.kind != new_symbol.kind:
        reasons.append(f"kind changed from {old_symbol.kind} to {new_symbol.kind}")
        return reasons

    if old_symbol.kind == "OBJECT":
        if old_symbol.size != new_symbol.size:
            reasons.append(f"size changed from {old_symbol.size} to {new_symbol.size}")
        old_type = type_name(old_abi, old_symbol.return_type)
        new_type = type_name(new_abi, new_symbol.return_type)
        if old_type != new_type:
            reasons.append(f"type changed from '{old_type}' to '{new_type}'")
        return reasons

    mapping = align_params(old_abi, old_symbol, new_abi, new_symbol)
    record_alignment(result.ledger, EntityKind.SYMBOL, old_symbol.symbol_id, new_symbol.symbol_id, mapping)
    result.symbol_alignments[identity] = mapping

    old_parts = _group_by_position(calling_sequence(old_abi, old_symbol))
    new_parts = _group_by_position(calling_sequence(new_abi, new_symbol))

    for position in mapping.removed:
        param = old_symbol.param_at(position)
        reasons.append(f"parameter '{param.name if param else position}' removed")
        for part in old_parts.get(position, []):
            result.ledger.record(EntityKind.PART, 1, old_symbol.symbol_id, part.subject, StatusField.REMOVED)
    for position in mapping.added:
        param = new_symbol.param_at(position)
        reasons.append(f"parameter '{param.name if param else position}' added")
        for part in new_parts.get(position, []):
            result.ledger.record(EntityKind.PART, 2, new_symbol.symbol_id, part.subject, StatusField.ADDED)

    for old_position, new_position in sorted(mapping.forward.items()):
        old_param = old_symbol.param_at(old_position)
        new_param = new_symbol.param_at(new_position)
        if old_param is None or new_param is None:
            continue
        if mapping.is_moved(old_position):
            reasons.append(
                f"parameter '{old_param.name}' moved from position {mapping.old_rank(old_position)} "
                f"to {mapping.relative_position.get(new_position, 0)}"
            )
        reasons.extend(
            _PartComparison(result, old_symbol, new_symbol).compare(
                old_parts.get(old_position, []),
                new_parts.get(new_position, []),
                old_param.name,
                new_param.name,
                old_param.type_id,
                new_param.type_id,
            )
        )

    reasons.extend(
        _PartComparison(result, old_symbol, new_symbol).compare(
            old_parts.get(None, []),
            new_parts.get(None, []),
            RETVAL,
            RETVAL,
            old_symbol.return_type,
            new_symbol.return_type,
        )
    )
    return reasons


def compare_dumps(old: AbiDump, new: AbiDump, options: ViewerOptions | None = None) -> DiffResult:
    """Structural diff of two dumps: added, removed and changed types and symbols."""
    options = options or ViewerOptions()
    result = DiffResult(old_index=build_abi_index(old), new_index=build_abi_index(new), options=options)
    if old.arch != new.arch:
        result.warn(f"Comparing dumps of different architectures ({old.arch} vs {new.arch}).")

    detect_added_removed(result)

    for old_type_id in sorted(result.mapped_types, key=id_sort_key):
        new_type_id = result.mapped_types[old_type_id]
        old_record = old.types.get(old_type_id)
        new_record = new.types.get(new_type_id)
        if old_record is None or new_record is None:
            continue
        if not select_type(old_record, options) or not new_record.complete:
            continue
        try:
            reasons = compare_type(result, old_type_id, new_type_id)
        except AbiViewerError as exc:
            result.warn(f"Type '{old_record.name}' was not compared: {exc}")
            continue
        if reasons:
            result.changed_types.add(old_record.name)
            result.type_changes[old_record.name] = reasons

    common = visible_symbols(result.old_index, options) & visible_symbols(result.new_index, options)
    for identity in sorted(common):
        try:
            reasons = compare_symbol(result, identity)
        except AbiViewerError as exc:
            result.warn(f"Symbol '{identity}' was not compared: {exc}")
            continue
        if reasons:
            result.changed_symbols.add(identity)
            result.symbol_changes[identity] = reasons

    LOGGER.info(
        "Compared %s and %s: %d changed symbols, %d changed types",
        old.label,
        new.label,
        len(result.changed_symbols),
        len(result.changed_types),
    )
    return result


def _dump_summary(abi: AbiDump) -> dict[str, Any]:
    return {
        "label": abi.label,
        "library": abi.library_name,
        "version": abi.library_version,
        "arch": abi.arch,
        "dumper_version": abi.dumper_version,
    }


def build_report(result: DiffResult, include_ledger: bool = True) -> dict[str, Any]:
    report: dict[str, Any] = {
        "tool": {"name": "abi-viewer", "version": TOOL_VERSION},
        "status": "changed" if result.has_changes else "unchanged",
        "old": _dump_summary(result.old),
        "new": _dump_summary(result.new),
        "options": result.options.as_dict(),
        "summary": {
            "added_symbols": len(result.added_symbols),
            "removed_symbols": len(result.removed_symbols),
            "changed_symbols": len(result.changed_symbols),
            "added_types": len(result.added_types),
            "removed_types": len(result.removed_types),
            "changed_types": len(result.changed_types),
        },
        "added_symbols": sorted(result.added_symbols),
        "removed_symbols": sorted(result.removed_symbols),
        "changed_symbols": sorted(result.changed_symbols),
        "added_types": sorted(result.added_types),
        "removed_types": sorted(result.removed_types),
        "changed_types": sorted(result.changed_types),
        "symbol_changes": {key: list(result.symbol_changes[key]) for key in sorted(result.symbol_changes)},
        "type_changes": {key: list(result.type_changes[key]) for key in sorted(result.type_changes)},
        "unanchored_anonymous": {
            "removed": sorted(result.unanchored_anonymous["removed"]),
            "added": sorted(result.unanchored_anonymous["added"]),
        },
        "warnings": list(result.warnings),
    }
    if include_ledger:
        report["ledger"] = result.ledger.as_list()
    validate_with_jsonschema_if_available("report", report)
    return report


def print_report(report: dict[str, Any]) -> None:
    status = report.get("status", "unknown")
    print(f"ABI diff status: {status}")

    summary = report.get("summary", {})
    print(f"Removed symbols: {summary.get('removed_symbols', 0)}")
    print(f"Added symbols: {summary.get('added_symbols', 0)}")
    print(f"Changed symbols: {summary.get('changed_symbols', 0)}")
    print(f"Removed types: {summary.get('removed_types', 0)}")
    print(f"Added types: {summary.get('added_types', 0)}")
    print(f"Changed types: {summary.get('changed_types', 0)}")

    unanchored = report.get("unanchored_anonymous", {})
    unanchored_count = len(unanchored.get("removed", [])) + len(unanchored.get("added", []))
    if unanchored_count:
        print(f"Unanchored anonymous types: {unanchored_count}")

    warnings = report.get("warnings", [])
    if warnings:
        print("Warnings:")
        for warning in warnings:
            print(f"  - {warning}")


def append_markdown_changes(lines: list[str], title: str, changes: dict[str, list[str]]) -> None:
    if not changes:
        return
    lines.append(f"## {title}")
    for name, reasons in changes.items():
        lines.append(f"- `{name}`")
        for reason in reasons:
            lines.append(f"  - {reason}")
    lines.append("")


def append_markdown_names(lines: list[str], title: str, names: list[str]) -> None:
    if not names:
        return
    lines.append(f"## {title}")
    for name in names:
        lines.append(f"- `{name}`")
    lines.append("")


def write_markdown_report(path: Path, report: dict[str, Any]) -> None:
    old = report.get("old", {})
    new = report.get("new", {})
    summary = report.get("summary", {})

    lines: list[str] = []
    lines.append(f"# ABI Diff Report ({report.get('status', 'unknown')})")
    lines.append("")
    lines.append(f"- Old: `{old.get('library')}` `{old.get('version')}` ({old.get('arch')})")
    lines.append(f"- New: `{new.get('library')}` `{new.get('version')}` ({new.get('arch')})")
    for key in ("removed_symbols", "added_symbols", "changed_symbols", "removed_types", "added_types", "changed_types"):
        lines.append(f"- {key.replace('_', ' ').capitalize()}: `{summary.get(key, 0)}`")
    lines.append("")

    append_markdown_names(lines, "Removed Symbols", report.get("removed_symbols", []))
    append_markdown_names(lines, "Added Symbols", report.get("added_symbols", []))
    append_markdown_changes(lines, "Changed Symbols", report.get("symbol_changes", {}))
    append_markdown_names(lines, "Removed Types", report.get("removed_types", []))
    append_markdown_names(lines, "Added Types", report.get("added_types", []))
    append_markdown_changes(lines, "Changed Types", report.get("type_changes", {}))

    unanchored = report.get("unanchored_anonymous", {})
    append_markdown_names(
        lines,
        "Unanchored Anonymous Types",
        [f"{name} (removed)" for name in unanchored.get("removed", [])]
        + [f"{name} (added)" for name in unanchored.get("added", [])],
    )

    warnings = report.get("warnings", [])
    if warnings:
        lines.append("## Warnings")
        for warning in warnings:
            lines.append(f"- {warning}")
        lines.append("")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
