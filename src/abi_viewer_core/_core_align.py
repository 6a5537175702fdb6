from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403


@dataclass(frozen=True)
class AlignedElement:
    position: int
    name: str
    signature: str = ""


@dataclass
class AlignmentMapping:
    forward: dict[int, int] = field(default_factory=dict)
    backward: dict[int, int] = field(default_factory=dict)
    removed: list[int] = field(default_factory=list)
    added: list[int] = field(default_factory=list)
    relative_position: dict[int, int] = field(default_factory=dict)

    def link(self, old_position: int, new_position: int) -> None:
        self.forward[old_position] = new_position
        self.backward[new_position] = old_position

    def old_rank(self, old_position: int) -> int:
        return sum(1 for position in self.forward if position < old_position)

    def is_moved(self, old_position: int) -> bool:
        new_position = self.forward.get(old_position)
        if new_position is None:
            return False
        return self.old_rank(old_position) != self.relative_position.get(new_position, 0)

    def as_dict(self) -> dict[str, Any]:
        return {
            "mapped": {str(old): new for old, new in sorted(self.forward.items())},
            "removed": list(self.removed),
            "added": list(self.added),
            "relative_position": {str(new): rel for new, rel in sorted(self.relative_position.items())},
        }


def longest_common_substring(left: str, right: str) -> int:
    """Length of the longest substring of the shorter string found verbatim in the longer one."""
    shorter, longer = (left, right) if len(left) <= len(right) else (right, left)
    if shorter in longer:
        return len(shorter)
    for length in range(len(shorter) - 1, 0, -1):
        for start in range(0, len(shorter) - length + 1):
            if shorter[start : start + length] in longer:
                return length
    return 0


def _match_by_name(old: list[AlignedElement], new: list[AlignedElement], mapping: AlignmentMapping) -> None:
    for item in old:
        for candidate in new:
            if candidate.position in mapping.backward:
                continue
            if candidate.name == item.name:
                mapping.link(item.position, candidate.position)
                break


def _finish(old: list[AlignedElement], new: list[AlignedElement], mapping: AlignmentMapping) -> AlignmentMapping:
    mapping.removed = [item.position for item in old if item.position not in mapping.forward]
    mapping.added = [item.position for item in new if item.position not in mapping.backward]
    mapped_before = 0
    for item in new:
        mapping.relative_position[item.position] = mapped_before
        if item.position in mapping.backward:
            mapped_before += 1
    return mapping


def align_by_name_and_type(old: list[AlignedElement], new: list[AlignedElement]) -> AlignmentMapping:
    """Align two element lists by name, then by type signature.

    Elements still unmatched after the name pass are paired with an
    unclaimed new element of the same signature; among several candidates
    the one whose name shares the longest common substring wins, earlier
    positions first on ties.
    """
    old = sorted(old, key=lambda item: item.position)
    new = sorted(new, key=lambda item: item.position)
    mapping = AlignmentMapping()
    _match_by_name(old, new, mapping)

    for item in old:
        if item.position in mapping.forward:
            continue
        candidates = [
            candidate
            for candidate in new
            if candidate.position not in mapping.backward and candidate.signature == item.signature
        ]
        if not candidates:
            continue
        if len(candidates) > 1:
            candidates.sort(key=lambda candidate: -longest_common_substring(item.name, candidate.name))
        mapping.link(item.position, candidates[0].position)

    return _finish(old, new, mapping)


def align_by_name_and_value(old: list[AlignedElement], new: list[AlignedElement]) -> AlignmentMapping:
    old = sorted(old, key=lambda item: item.position)
    new = sorted(new, key=lambda item: item.position)
    mapping = AlignmentMapping()
    _match_by_name(old, new, mapping)

    old_names = {item.name for item in old}
    for item in old:
        if item.position in mapping.forward:
            continue
        for candidate in new:
            if candidate.position in mapping.backward or candidate.name in old_names:
                continue
            if candidate.signature == item.signature:
                mapping.link(item.position, candidate.position)
                break

    return _finish(old, new, mapping)


def member_elements(abi: AbiDump, record: TypeRecord) -> list[AlignedElement]:
    return [
        AlignedElement(member.position, member.name, type_name(abi, resolve_pure_type(abi, member.type_id)))
        for member in record.members
    ]


def enum_elements(record: TypeRecord) -> list[AlignedElement]:
    return [AlignedElement(member.position, member.name, member.value or "") for member in record.members]


def param_elements(abi: AbiDump, symbol: SymbolRecord) -> list[AlignedElement]:
    return [
        AlignedElement(param.position, param.name, type_name(abi, resolve_pure_type(abi, param.type_id)))
        for param in symbol.params
    ]


def align_members(old_abi: AbiDump, old_type: TypeRecord, new_abi: AbiDump, new_type: TypeRecord) -> AlignmentMapping:
    return align_by_name_and_type(member_elements(old_abi, old_type), member_elements(new_abi, new_type))


def align_enums(old_type: TypeRecord, new_type: TypeRecord) -> AlignmentMapping:
    return align_by_name_and_value(enum_elements(old_type), enum_elements(new_type))


def align_params(old_abi: AbiDump, old_symbol: SymbolRecord, new_abi: AbiDump, new_symbol: SymbolRecord) -> AlignmentMapping:
    return align_by_name_and_type(param_elements(old_abi, old_symbol), param_elements(new_abi, new_symbol))
