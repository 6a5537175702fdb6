from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import *  # noqa: F401,F403


class EightbyteClass(Enum):
    VOID = "VOID"
    INTEGER = "INTEGER"
    SSE = "SSE"
    SSEUP = "SSEUP"
    X87 = "X87"
    X87UP = "X87UP"
    COMPLEX_X87 = "COMPLEX_X87"
    MEMORY = "MEMORY"
    # i386 return classes
    FLOAT = "FLOAT"
    INTEGRAL = "INTEGRAL"


X87_CLASSES = frozenset({EightbyteClass.X87, EightbyteClass.X87UP, EightbyteClass.COMPLEX_X87})
POINTER_LIKE_KINDS = frozenset(
    {
        TypeKind.ENUM,
        TypeKind.POINTER,
        TypeKind.REF,
        TypeKind.RVALUE_REF,
        TypeKind.FUNC_PTR,
        TypeKind.METHOD_PTR,
        TypeKind.FIELD_PTR,
    }
)
AGGREGATE_KINDS = RECORD_KINDS | frozenset({TypeKind.ARRAY})
MAX_REGISTER_AGGREGATE = 2 * 8

_INTEGRAL_RE = re.compile(r"\A(?:(?:signed|unsigned|short|long|int|char)\s*)+\Z")
_INTEGRAL_NAMES = frozenset({"wchar_t", "char8_t", "char16_t", "char32_t", "_Bool", "bool"})
_FLOAT_NAMES = frozenset({"float", "double", "long double"})
_SSE_NAMES = frozenset({"float", "double", "_Decimal32", "_Decimal64", "__m64"})
_SSE_SSEUP_NAMES = frozenset({"__float128", "_Decimal128", "__m128"})
_INT128_NAMES = frozenset({"__int128", "unsigned __int128", "__int128 unsigned"})
_COMPLEX_SSE_RE = re.compile(r"\A(?:complex|_Complex) (?:float|double)\Z")
_COMPLEX_X87_RE = re.compile(r"\A(?:complex|_Complex) long double\Z")


@dataclass
class ClassifiedPart:
    eightbyte_class: EightbyteClass
    elements: dict[int, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "class": self.eightbyte_class.value,
            "elements": {str(offset): label for offset, label in sorted(self.elements.items())},
        }


def is_integral_name(name: str) -> bool:
    return name in _INTEGRAL_NAMES or bool(_INTEGRAL_RE.match(name))


def is_float_name(name: str) -> bool:
    return name in _FLOAT_NAMES


def join_fields(prefix: str, label: str) -> str:
    if label.startswith("["):
        return prefix + label
    return f"{prefix}.{label}"


def merge_class_pair(left: EightbyteClass, right: EightbyteClass, arch: str) -> EightbyteClass | None:
    if arch != "x86_64":
        return None
    if left is right:
        return left
    if EightbyteClass.MEMORY in (left, right):
        return EightbyteClass.MEMORY
    if EightbyteClass.INTEGER in (left, right):
        return EightbyteClass.INTEGER
    if left in X87_CLASSES or right in X87_CLASSES:
        return EightbyteClass.MEMORY
    return EightbyteClass.SSE


def merge_classes(group: list[tuple[int, ClassifiedPart]], arch: str) -> bool:
    """Merge adjacent parts of one eightbyte pairwise, (0,1), (2,3) and so on.

    ``group`` holds ``(offset, part)`` items sorted by offset and is rewritten
    in place. Element labels of the second part of a pair are re-keyed
    relative to the first part's offset. Returns whether any pair merged, so
    callers repeat until a single part remains.
    """
    if len(group) < 2:
        return False

    merged_any = False
    out: list[tuple[int, ClassifiedPart]] = []
    index = 0
    while index + 1 < len(group):
        left_offset, left = group[index]
        right_offset, right = group[index + 1]
        merged_class = merge_class_pair(left.eightbyte_class, right.eightbyte_class, arch)
        if merged_class is None:
            out.append(group[index])
            out.append(group[index + 1])
        else:
            elements = dict(left.elements)
            for relative, label in sorted(right.elements.items()):
                elements.setdefault(right_offset + relative - left_offset, label)
            out.append((left_offset, ClassifiedPart(merged_class, elements)))
            merged_any = True
        index += 2
    if index < len(group):
        out.append(group[index])

    group[:] = out
    return merged_any


def aggregate_members(abi: AbiDump, record: TypeRecord) -> list[MemberRecord]:
    if record.kind is not TypeKind.ARRAY:
        return list(record.members)

    element_size = type_size(abi, resolve_pure_type(abi, record.base_type))
    count = record.size // element_size if element_size > 0 else 0
    return [
        MemberRecord(position=index, name=f"[{index}]", type_id=record.base_type, offset=index * element_size)
        for index in range(count)
    ]


def classify_aggregate(abi: AbiDump, type_id: str | None) -> dict[int, ClassifiedPart]:
    record = get_type(abi, resolve_pure_type(abi, type_id))
    if record is None:
        return {0: ClassifiedPart(EightbyteClass.MEMORY)}

    word = WORD_SIZE[abi.arch]
    is_union = record.kind is TypeKind.UNION
    groups: dict[int, list[tuple[int, ClassifiedPart]]] = {}

    for member in aggregate_members(abi, record):
        member_offset = 0 if is_union else member.offset
        sub_classes = classify_type(abi, member.type_id)
        for offset in sorted(sub_classes):
            part = sub_classes[offset]
            if part.eightbyte_class is EightbyteClass.VOID:
                continue
            if part.elements:
                elements = {relative: join_fields(member.name, label) for relative, label in part.elements.items()}
            else:
                elements = {0: member.name}
            absolute = member_offset + offset
            groups.setdefault(absolute // word, []).append((absolute, ClassifiedPart(part.eightbyte_class, elements)))

    classes: dict[int, ClassifiedPart] = {}
    for index in sorted(groups):
        group = sorted(groups[index], key=lambda item: item[0])
        while merge_classes(group, abi.arch):
            pass
        # a merged group is keyed by its eightbyte start
        start = index * word
        for offset, part in group:
            elements = {offset - start + relative: label for relative, label in part.elements.items()}
            if is_union and elements:
                first = min(elements)
                elements = {first: elements[first]}
            classes[start] = ClassifiedPart(part.eightbyte_class, elements)
    return classes


def _classify_x86(record: TypeRecord) -> EightbyteClass:
    if is_float_name(record.name):
        return EightbyteClass.FLOAT
    if record.kind is TypeKind.INTRINSIC or record.kind in POINTER_LIKE_KINDS:
        return EightbyteClass.INTEGRAL
    return EightbyteClass.MEMORY


def _classify_x86_64_intrinsic(record: TypeRecord) -> dict[int, ClassifiedPart]:
    name = record.name
    if is_integral_name(name):
        return {0: ClassifiedPart(EightbyteClass.INTEGER)}
    if name in _INT128_NAMES:
        return {0: ClassifiedPart(EightbyteClass.INTEGER), 8: ClassifiedPart(EightbyteClass.INTEGER)}
    if name in _SSE_NAMES:
        return {0: ClassifiedPart(EightbyteClass.SSE)}
    if name in _SSE_SSEUP_NAMES:
        return {0: ClassifiedPart(EightbyteClass.SSE), 8: ClassifiedPart(EightbyteClass.SSEUP)}
    if name == "__m256":
        return {0: ClassifiedPart(EightbyteClass.SSE), 24: ClassifiedPart(EightbyteClass.SSEUP)}
    if name == "long double":
        return {0: ClassifiedPart(EightbyteClass.X87), 8: ClassifiedPart(EightbyteClass.X87UP)}
    if _COMPLEX_SSE_RE.match(name):
        return {0: ClassifiedPart(EightbyteClass.MEMORY)}
    if _COMPLEX_X87_RE.match(name):
        return {0: ClassifiedPart(EightbyteClass.COMPLEX_X87)}
    return {0: ClassifiedPart(EightbyteClass.MEMORY)}


def _classify_x86_64(abi: AbiDump, type_id: str | None, record: TypeRecord) -> dict[int, ClassifiedPart]:
    kind = record.kind
    if kind is TypeKind.METHOD_PTR and record.size == MAX_REGISTER_AGGREGATE:
        return {0: ClassifiedPart(EightbyteClass.INTEGER), 8: ClassifiedPart(EightbyteClass.INTEGER)}
    if kind in POINTER_LIKE_KINDS:
        return {0: ClassifiedPart(EightbyteClass.INTEGER)}
    if kind is TypeKind.INTRINSIC:
        return _classify_x86_64_intrinsic(record)
    if kind in AGGREGATE_KINDS:
        if record.size > MAX_REGISTER_AGGREGATE:
            return {0: ClassifiedPart(EightbyteClass.MEMORY)}
        return classify_aggregate(abi, type_id)
    if kind in QUALIFIER_KINDS or kind is TypeKind.FUNC:
        # qualifier without a base type, or a bare function type
        return {0: ClassifiedPart(EightbyteClass.MEMORY)}
    raise AbiViewerError(f"Type kind '{kind.value}' has no x86_64 classification rule.")


def classify_type(abi: AbiDump, type_id: str | None) -> dict[int, ClassifiedPart]:
    """Classify a type into eightbyte classes keyed by byte offset.

    The type is first resolved through const/volatile/typedef qualifiers.
    ``void`` yields a single VOID entry. On x86 the result is always a single
    FLOAT, INTEGRAL or MEMORY entry; on x86_64 small aggregates are split into
    per-eightbyte parts whose ``elements`` name the fields they carry.
    """
    record = get_type(abi, resolve_pure_type(abi, type_id))
    if record is not None and record.name == "void":
        return {0: ClassifiedPart(EightbyteClass.VOID)}

    if abi.arch == "x86":
        if record is None:
            return {0: ClassifiedPart(EightbyteClass.MEMORY)}
        return {0: ClassifiedPart(_classify_x86(record))}
    if abi.arch == "x86_64":
        if record is None:
            return {0: ClassifiedPart(EightbyteClass.MEMORY)}
        return _classify_x86_64(abi, type_id, record)
    raise AbiViewerError(f"Unsupported architecture for classification: {abi.arch}")
