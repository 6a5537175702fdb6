from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_dumper import *  # noqa: F401,F403


class TypeKind(Enum):
    INTRINSIC = "Intrinsic"
    POINTER = "Pointer"
    REF = "Ref"
    RVALUE_REF = "RvalueRef"
    ARRAY = "Array"
    TYPEDEF = "Typedef"
    CONST = "Const"
    VOLATILE = "Volatile"
    CONST_VOLATILE = "ConstVolatile"
    RESTRICT = "Restrict"
    STRUCT = "Struct"
    CLASS = "Class"
    UNION = "Union"
    ENUM = "Enum"
    FUNC_PTR = "FuncPtr"
    METHOD_PTR = "MethodPtr"
    FIELD_PTR = "FieldPtr"
    FUNC = "Func"


QUALIFIER_KINDS = frozenset(
    {
        TypeKind.CONST,
        TypeKind.VOLATILE,
        TypeKind.CONST_VOLATILE,
        TypeKind.RESTRICT,
        TypeKind.TYPEDEF,
    }
)
DERIVED_KINDS = QUALIFIER_KINDS | frozenset(
    {
        TypeKind.REF,
        TypeKind.RVALUE_REF,
        TypeKind.ARRAY,
        TypeKind.POINTER,
    }
)
RECORD_KINDS = frozenset({TypeKind.STRUCT, TypeKind.CLASS, TypeKind.UNION})
SELECTABLE_KINDS = RECORD_KINDS | frozenset({TypeKind.ENUM})

ELLIPSIS_NAME = "..."
RESULT_PTR = ".result_ptr"
RETVAL = ".retval"
STD_SYMBOL_RE = re.compile(r"\A(_ZS|_ZNS|_ZNKS|_ZN9__gnu_cxx|_ZNK9__gnu_cxx|_ZTIS|_ZTSS|_Zd|_Zn)")
STD_TYPE_RE = re.compile(r"\A(?:struct |class |union |enum |)(\w+)::")
STD_NAMESPACES = ("std", "__gnu_cxx")
MEMBER_PATH_RE = re.compile(r"\A(\w+)((?:\[\d+\])*)(?:\.(.+))?\Z")
_VTABLE_SYMBOL_RE = re.compile(r"\s+\[(.+)\]\Z")
_VTABLE_CAST_PREFIX = "(int (*)(...)) "


class LocationKind(Enum):
    STACK = "stack"
    REGISTER = "register"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Location:
    kind: LocationKind
    name: str = ""
    offset: int | None = 0

    @classmethod
    def stack(cls, offset: int | None) -> "Location":
        return cls(kind=LocationKind.STACK, offset=offset)

    @classmethod
    def register(cls, name: str, offset: int = 0) -> "Location":
        return cls(kind=LocationKind.REGISTER, name=name, offset=offset)

    @classmethod
    def unknown(cls) -> "Location":
        return cls(kind=LocationKind.UNKNOWN)

    @property
    def is_stack(self) -> bool:
        return self.kind is LocationKind.STACK

    @property
    def is_register(self) -> bool:
        return self.kind is LocationKind.REGISTER

    @property
    def is_known(self) -> bool:
        return self.kind is not LocationKind.UNKNOWN

    def render(self) -> str:
        if self.kind is LocationKind.STACK:
            if self.offset is None:
                return "stack + n"
            if self.offset < 0:
                return f"stack - {-self.offset}"
            return f"stack + {self.offset}"
        if self.kind is LocationKind.REGISTER:
            if self.offset:
                return f"%{self.name} + {self.offset}"
            return f"%{self.name}"
        return ""

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class MemberRecord:
    position: int
    name: str
    type_id: str | None
    offset: int = 0
    bitfield: int | None = None
    value: str | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "position": self.position,
            "name": self.name,
            "type": self.type_id,
            "offset": self.offset,
        }
        if self.bitfield is not None:
            out["bitfield"] = self.bitfield
        if self.value is not None:
            out["value"] = self.value
        return out


@dataclass(frozen=True)
class TypeRecord:
    type_id: str
    kind: TypeKind
    name: str
    size: int = 0
    base_type: str | None = None
    members: tuple[MemberRecord, ...] = ()
    base_classes: dict[str, int] = field(default_factory=dict)
    vtable: dict[int, str] = field(default_factory=dict)
    namespace: str | None = None
    private: bool = False
    header: str | None = None
    source: str | None = None
    complete: bool = True

    @property
    def is_anonymous(self) -> bool:
        return self.name.startswith("anon-")

    def member_at(self, position: int) -> MemberRecord | None:
        for member in self.members:
            if member.position == position:
                return member
        return None


@dataclass(frozen=True)
class ParamRecord:
    position: int
    name: str
    type_id: str | None
    stack_offset: Location | None = None


@dataclass(frozen=True)
class SymbolRecord:
    symbol_id: str
    mangled_name: str | None
    short_name: str | None
    kind: str = "FUNC"
    class_id: str | None = None
    constructor: bool = False
    destructor: bool = False
    static: bool = False
    const: bool = False
    params: tuple[ParamRecord, ...] = ()
    registers: dict[int, dict[int, str]] = field(default_factory=dict)
    return_type: str | None = None
    bind: str | None = None
    visibility: str | None = None
    section: str | None = None
    size: int = 0
    header: str | None = None
    source: str | None = None

    @property
    def identity(self) -> str:
        return self.mangled_name or self.short_name or ""

    def param_at(self, position: int) -> ParamRecord | None:
        for param in self.params:
            if param.position == position:
                return param
        return None


@dataclass
class AbiDump:
    arch: str
    word_size: int
    library_name: str
    library_version: str | None
    dumper_version: str
    types: dict[str, TypeRecord]
    symbols: dict[str, SymbolRecord]
    label: str = ""


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        match = re.match(r"\s*-?\d+", str(value))
        if match:
            return int(match.group(0))
        return default


def _as_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _sorted_positions(mapping: dict[str, Any]) -> list[tuple[int, Any]]:
    return sorted(((_as_int(key), value) for key, value in mapping.items()), key=lambda item: item[0])


def parse_stack_offset(value: Any) -> Location:
    match = re.search(r"-\s*(\d+)", str(value))
    if match:
        return Location.stack(-int(match.group(1)))
    return Location.stack(_as_int(value))


def parse_register_hints(payload: Any) -> dict[int, dict[int, str]]:
    out: dict[int, dict[int, str]] = {}
    if not isinstance(payload, dict):
        return out
    for key, register in payload.items():
        match = re.fullmatch(r"\s*(\d+)\s*(?:\+\s*(\d+))?\s*", str(key))
        if match is None or not register:
            continue
        position = int(match.group(1))
        suboffset = int(match.group(2)) if match.group(2) else 0
        out.setdefault(position, {})[suboffset] = str(register)
    return out


def parse_type_kind(value: Any, label: str) -> TypeKind:
    try:
        return TypeKind(str(value))
    except ValueError as exc:
        raise AbiViewerError(f"{label} has unknown type kind '{value}'.") from exc


def parse_type_record(type_id: str, payload: dict[str, Any], label: str) -> TypeRecord:
    if not isinstance(payload, dict):
        raise AbiViewerError(f"{label}: TypeInfo entry {type_id} must be an object.")
    kind = parse_type_kind(payload.get("Type"), f"{label}: type {type_id}")

    members: list[MemberRecord] = []
    raw_members = payload.get("Memb")
    if isinstance(raw_members, dict):
        for position, item in _sorted_positions(raw_members):
            if not isinstance(item, dict):
                continue
            bitfield = item.get("bitfield")
            value = item.get("value")
            members.append(
                MemberRecord(
                    position=position,
                    name=str(item.get("name", "")),
                    type_id=_as_optional_str(item.get("type")),
                    offset=_as_int(item.get("offset")),
                    bitfield=_as_int(bitfield) if bitfield is not None else None,
                    value=str(value) if value is not None else None,
                )
            )

    base_classes: dict[str, int] = {}
    raw_bases = payload.get("Base")
    if isinstance(raw_bases, dict):
        for base_id, item in raw_bases.items():
            position = item.get("pos") if isinstance(item, dict) else item
            base_classes[str(base_id)] = _as_int(position)

    vtable: dict[int, str] = {}
    raw_vtable = payload.get("VTable")
    if isinstance(raw_vtable, dict):
        for offset, target in raw_vtable.items():
            vtable[_as_int(offset)] = str(target)

    return TypeRecord(
        type_id=str(type_id),
        kind=kind,
        name=str(payload.get("Name", "")),
        size=_as_int(payload.get("Size")),
        base_type=_as_optional_str(payload.get("BaseType")),
        members=tuple(members),
        base_classes=base_classes,
        vtable=vtable,
        namespace=_as_optional_str(payload.get("NameSpace")),
        private=bool(payload.get("PrivateABI")),
        header=_as_optional_str(payload.get("Header")),
        source=_as_optional_str(payload.get("Source")),
        complete=len(payload) > 2,
    )


def parse_symbol_record(symbol_id: str, payload: dict[str, Any], label: str) -> SymbolRecord:
    if not isinstance(payload, dict):
        raise AbiViewerError(f"{label}: SymbolInfo entry {symbol_id} must be an object.")

    params: list[ParamRecord] = []
    raw_params = payload.get("Param")
    if isinstance(raw_params, dict):
        for position, item in _sorted_positions(raw_params):
            if not isinstance(item, dict):
                continue
            offset = item.get("offset")
            params.append(
                ParamRecord(
                    position=position,
                    name=str(item.get("name", f"p{position + 1}")),
                    type_id=_as_optional_str(item.get("type")),
                    stack_offset=parse_stack_offset(offset) if offset is not None and offset != "" else None,
                )
            )

    return SymbolRecord(
        symbol_id=str(symbol_id),
        mangled_name=_as_optional_str(payload.get("MnglName")),
        short_name=_as_optional_str(payload.get("ShortName")),
        kind=str(payload.get("Kind") or "FUNC"),
        class_id=_as_optional_str(payload.get("Class")),
        constructor=bool(payload.get("Constructor")),
        destructor=bool(payload.get("Destructor")),
        static=bool(payload.get("Static")),
        const=bool(payload.get("Const")),
        params=tuple(params),
        registers=parse_register_hints(payload.get("Reg")),
        return_type=_as_optional_str(payload.get("Return")),
        bind=_as_optional_str(payload.get("Bind")),
        visibility=_as_optional_str(payload.get("Visibility")),
        section=_as_optional_str(payload.get("Sect")),
        size=_as_int(payload.get("Size")),
        header=_as_optional_str(payload.get("Header")),
        source=_as_optional_str(payload.get("Source")),
    )


def validate_dump_payload(payload: dict[str, Any], label: str) -> None:
    if not isinstance(payload, dict):
        raise AbiViewerError(f"{label}: ABI dump root must be an object.")
    require_keys(payload, ["TypeInfo", "SymbolInfo", "Arch"], label)

    type_info = payload.get("TypeInfo")
    symbol_info = payload.get("SymbolInfo")
    if not isinstance(type_info, dict) or not isinstance(symbol_info, dict) or not type_info or not symbol_info:
        raise AbiViewerError(
            f"{label}: not enough debug-info in the shared object, try to recompile it with '-g' option."
        )

    dumper_version = payload.get("ABI_DUMPER_VERSION")
    if dumper_version is None or compare_versions(str(dumper_version), ABI_DUMPER_MIN_VERSION) < 0:
        raise AbiViewerError(
            f"{label}: incorrect version of input ABI dump ({dumper_version}); "
            f"abi-dumper {ABI_DUMPER_MIN_VERSION} or newer is required."
        )

    if payload.get("ExtraDump") != "On":
        raise AbiViewerError(f"{label}: input ABI dump should be created with -extra-dump option.")

    arch = payload.get("Arch")
    if arch not in SUPPORTED_ARCHS:
        raise AbiViewerError(f"{label}: unsupported architecture '{arch}' (supported: {', '.join(SUPPORTED_ARCHS)}).")

    validate_with_jsonschema_if_available("dump", payload)


def parse_abi_dump(payload: dict[str, Any], label: str = "ABI dump") -> AbiDump:
    validate_dump_payload(payload, label)
    arch = str(payload["Arch"])

    types: dict[str, TypeRecord] = {}
    for type_id, item in payload["TypeInfo"].items():
        types[str(type_id)] = parse_type_record(str(type_id), item, label)

    symbols: dict[str, SymbolRecord] = {}
    for symbol_id, item in payload["SymbolInfo"].items():
        symbols[str(symbol_id)] = parse_symbol_record(str(symbol_id), item, label)

    return AbiDump(
        arch=arch,
        word_size=_as_int(payload.get("WordSize"), WORD_SIZE[arch]),
        library_name=str(payload.get("LibraryName", "")),
        library_version=_as_optional_str(payload.get("LibraryVersion")),
        dumper_version=str(payload.get("ABI_DUMPER_VERSION")),
        types=types,
        symbols=symbols,
        label=label,
    )


def load_abi_dump(path: Path) -> AbiDump:
    payload = read_dump_payload(path)
    return parse_abi_dump(payload, label=str(path))


def get_type(abi: AbiDump, type_id: str | None) -> TypeRecord | None:
    if type_id is None:
        return None
    return abi.types.get(str(type_id))


def type_name(abi: AbiDump, type_id: str | None) -> str:
    record = get_type(abi, type_id)
    return record.name if record is not None else ""


def type_size(abi: AbiDump, type_id: str | None) -> int:
    record = get_type(abi, type_id)
    return record.size if record is not None else 0


def _resolve_through(abi: AbiDump, type_id: str | None, kinds: frozenset[TypeKind]) -> str | None:
    seen: set[str] = set()
    current = type_id
    while current is not None and current not in seen:
        seen.add(current)
        record = get_type(abi, current)
        if record is None or record.base_type is None or record.kind not in kinds:
            return current
        current = record.base_type
    return current


def resolve_pure_type(abi: AbiDump, type_id: str | None) -> str | None:
    return _resolve_through(abi, type_id, QUALIFIER_KINDS)


def resolve_basic_type(abi: AbiDump, type_id: str | None) -> str | None:
    return _resolve_through(abi, type_id, DERIVED_KINDS)


def member_position(abi: AbiDump, type_id: str | None, name: str) -> int | None:
    record = get_type(abi, type_id)
    if record is None:
        return None
    for member in record.members:
        if member.name == name:
            return member.position
    return None


def split_member_path(path: str) -> tuple[str, str]:
    """Split ``a[1].b`` into the leading member name ``a`` and the suffix ``[1].b``."""
    match = MEMBER_PATH_RE.match(path)
    if match is None:
        return path, ""
    head = match.group(1)
    return head, path[len(head) :]


def member_type(abi: AbiDump, type_id: str | None, path: str) -> str | None:
    """Follow a member path (``a.b``, ``a[0]``, ``a[0].b``) from a type to the member type id.

    An index step resolves to the element type of an array member.
    """
    match = MEMBER_PATH_RE.match(path)
    if match is None:
        return None
    head, indexes, rest = match.groups()
    record = get_type(abi, resolve_pure_type(abi, type_id))
    if record is None:
        return None
    for member in record.members:
        if member.name != head:
            continue
        found = member.type_id
        for _ in range(indexes.count("[")):
            array = get_type(abi, resolve_pure_type(abi, found))
            if array is None or array.kind is not TypeKind.ARRAY:
                return None
            found = array.base_type
        if rest:
            return member_type(abi, found, rest)
        return found
    return None


def base_class_list(abi: AbiDump, record: TypeRecord) -> list[tuple[str, int]]:
    """Base classes of a class as ``(name, position)`` in declaration order."""
    bases = [(type_name(abi, base_id) or base_id, position) for base_id, position in record.base_classes.items()]
    return sorted(bases, key=lambda item: (item[1], item[0]))


def vtable_entry_text(value: str) -> str:
    """Readable vtable slot contents: drop the slot cast and the trailing ``[symbol]``."""
    text = _VTABLE_SYMBOL_RE.sub("", value)
    if text.startswith(_VTABLE_CAST_PREFIX):
        text = text[len(_VTABLE_CAST_PREFIX) :]
    if text.startswith("(") and text.endswith(")"):
        text = text[1:-1]
    return text.strip()


def bitfield_offset(record: TypeRecord, position: int) -> int:
    """Bit offset of a bit-field inside the storage unit it shares with earlier bit-fields."""
    member = record.member_at(position)
    if member is None or member.bitfield is None:
        return 0
    total = 0
    for other in record.members:
        if other.position < position and other.offset == member.offset and other.bitfield is not None:
            total += other.bitfield
    return total


def is_std_symbol(name: str) -> bool:
    return bool(STD_SYMBOL_RE.match(name))


def is_std_type(record: TypeRecord) -> bool:
    if record.namespace in STD_NAMESPACES:
        return True
    match = STD_TYPE_RE.match(record.name)
    return bool(match and match.group(1) in STD_NAMESPACES)


@dataclass
class AbiIndex:
    abi: AbiDump
    type_ids: dict[str, str]
    symbol_ids: dict[str, str]
    type_usage: dict[str, dict[str, set[str]]]

    def symbol(self, identity: str) -> SymbolRecord | None:
        symbol_id = self.symbol_ids.get(identity)
        if symbol_id is None:
            return None
        return self.abi.symbols.get(symbol_id)

    def type_by_name(self, name: str) -> TypeRecord | None:
        type_id = self.type_ids.get(name)
        if type_id is None:
            return None
        return self.abi.types.get(type_id)


def id_sort_key(value: str) -> tuple[int, str]:
    return (_as_int(value), value)


def build_abi_index(abi: AbiDump) -> AbiIndex:
    type_ids: dict[str, str] = {}
    for type_id in sorted(abi.types, key=id_sort_key):
        type_ids[abi.types[type_id].name] = type_id

    symbol_ids: dict[str, str] = {}
    for symbol_id in sorted(abi.symbols, key=id_sort_key):
        symbol = abi.symbols[symbol_id]
        identity = symbol.identity
        if not identity:
            continue
        first_param = symbol.param_at(0)
        if identity in symbol_ids and first_param is not None and first_param.name == "p1":
            LOGGER.info("Skip duplicated symbol entry %s (id %s)", identity, symbol_id)
            continue
        symbol_ids[identity] = symbol_id

    type_usage: dict[str, dict[str, set[str]]] = {}
    for type_id in sorted(abi.types, key=id_sort_key):
        for member in abi.types[type_id].members:
            if member.type_id is None:
                continue
            basic_id = resolve_basic_type(abi, member.type_id)
            if basic_id is None:
                continue
            type_usage.setdefault(basic_id, {}).setdefault(type_id, set()).add(member.name)

    return AbiIndex(abi=abi, type_ids=type_ids, symbol_ids=symbol_ids, type_usage=type_usage)
