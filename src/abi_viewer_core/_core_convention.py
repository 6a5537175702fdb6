from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_classify import *  # noqa: F401,F403

INTEGER_RETURN_REGISTERS = ("rax", "rdx")
SSE_RETURN_REGISTERS = ("xmm0", "xmm1")
X87_REGISTER = "st0"
X87_SECOND_REGISTER = "st1"
RESULT_PTR_REGISTER_X86_64 = "rdi"
RESULT_PTR_REGISTER_FASTCALL = "ecx"
X86_INTEGRAL_REGISTER = "eax"
X86_FLOAT_REGISTER = "st(0)"

FULL = "f"
LOW_HALF = "8l"
HIGH_HALF = "8h"

_MEMBER_SUBJECT_RE = re.compile(r"\A(\.retval|\w+)\.(\w+)")


@dataclass
class ConventionResult:
    entries: dict[str, Location] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        LOGGER.warning(message)

    def as_dict(self) -> dict[str, str]:
        return {subject: location.render() for subject, location in self.entries.items()}


@dataclass(frozen=True)
class ConventionPart:
    subject: str
    type_id: str | None
    type_name: str
    size: int | None
    location: Location
    position: int | None
    order: int

    @property
    def is_return(self) -> bool:
        return self.position is None

    @property
    def size_label(self) -> str:
        return "..." if self.size is None else str(self.size)

    def as_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "type": self.type_name,
            "size": self.size_label,
            "passed": self.location.render(),
            "position": self.position,
        }


@dataclass(frozen=True)
class StackSlot:
    offset: int | None
    subject: str
    type_name: str
    size: int
    padding: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "offset": "n" if self.offset is None else self.offset,
            "subject": self.subject,
            "type": self.type_name,
            "size": self.size,
            "padding": self.padding,
        }


class RegisterUsage:
    """Register claims of one return value, keyed by register and half.

    A half is ``f`` (full register), ``8l`` (low eight bytes) or ``8h``
    (high eight bytes); each may be claimed once.
    """

    def __init__(self) -> None:
        self.claims: dict[str, dict[str, dict[int, str]]] = {}

    def is_claimed(self, register: str, half: str) -> bool:
        return half in self.claims.get(register, {})

    def first_available(self, half: str, registers: tuple[str, ...]) -> str | None:
        for register in registers:
            if not self.is_claimed(register, half):
                return register
        return None

    def last_used(self, registers: tuple[str, ...]) -> str | None:
        for index, register in enumerate(registers):
            if register not in self.claims:
                return registers[index - 1] if index > 0 else registers[0]
        return None

    def claim(self, register: str, half: str, elements: dict[int, str]) -> bool:
        if self.is_claimed(register, half):
            return False
        self.claims.setdefault(register, {})[half] = dict(elements)
        return True


def _claim(
    usage: RegisterUsage,
    result: ConventionResult,
    symbol: SymbolRecord,
    register: str | None,
    half: str,
    elements: dict[int, str],
) -> None:
    if register is None:
        for label in elements.values():
            result.entries[label] = Location.unknown()
            result.warn(f"no free register for {label} in {symbol.identity}")
        return
    if not usage.claim(register, half, elements):
        for label in elements.values():
            result.entries.setdefault(label, Location.unknown())
            result.warn(f"register %{register} ({half}) is already used, {label} in {symbol.identity} left unassigned")
        return
    for relative, label in sorted(elements.items()):
        existing = result.entries.get(label)
        if existing is not None and existing.is_known:
            # a scalar spanning two eightbytes is shown at its first register
            continue
        if relative and half == HIGH_HALF:
            result.entries[label] = Location.register(register, 8 + relative)
        else:
            result.entries[label] = Location.register(register, relative)


def check_fast_call(symbol: SymbolRecord, arch: str) -> bool:
    """Best-effort fastcall guess: the first argument travels in %edx.

    This is a heuristic over the dumper's register hints, not a real
    calling-convention detection.
    """
    if arch != "x86":
        return False
    first = symbol.param_at(0)
    if first is not None and first.stack_offset is not None and first.stack_offset.offset == 0:
        return False
    return symbol.registers.get(0, {}).get(0) == "edx"


def _x86_64_return(abi: AbiDump, symbol: SymbolRecord, result: ConventionResult) -> None:
    classes = classify_type(abi, symbol.return_type)
    if any(part.eightbyte_class is EightbyteClass.MEMORY for part in classes.values()):
        # the caller passes the storage address as a hidden first argument
        result.entries = {RESULT_PTR: Location.register(RESULT_PTR_REGISTER_X86_64)}
        return

    usage = RegisterUsage()
    for offset in sorted(classes):
        part = classes[offset]
        eightbyte_class = part.eightbyte_class
        if part.elements:
            elements = {relative: join_fields(RETVAL, label) for relative, label in part.elements.items()}
        else:
            elements = {0: RETVAL}

        if eightbyte_class is EightbyteClass.VOID:
            continue
        if eightbyte_class is EightbyteClass.INTEGER:
            _claim(usage, result, symbol, usage.first_available(FULL, INTEGER_RETURN_REGISTERS), FULL, elements)
        elif eightbyte_class is EightbyteClass.SSE:
            _claim(usage, result, symbol, usage.first_available(LOW_HALF, SSE_RETURN_REGISTERS), LOW_HALF, elements)
        elif eightbyte_class is EightbyteClass.SSEUP:
            _claim(usage, result, symbol, usage.last_used(SSE_RETURN_REGISTERS), HIGH_HALF, elements)
        elif eightbyte_class is EightbyteClass.X87:
            _claim(usage, result, symbol, X87_REGISTER, LOW_HALF, elements)
        elif eightbyte_class is EightbyteClass.X87UP:
            _claim(usage, result, symbol, X87_REGISTER, HIGH_HALF, elements)
        elif eightbyte_class is EightbyteClass.COMPLEX_X87:
            _claim(usage, result, symbol, X87_REGISTER, FULL, {k: f"{v}.real" for k, v in elements.items()})
            _claim(usage, result, symbol, X87_SECOND_REGISTER, FULL, {k: f"{v}.imag" for k, v in elements.items()})
        else:
            raise AbiViewerError(f"Eightbyte class {eightbyte_class.value} is not valid on x86_64.")


def _x86_return(abi: AbiDump, symbol: SymbolRecord, result: ConventionResult) -> None:
    classes = classify_type(abi, symbol.return_type)
    eightbyte_class = classes[0].eightbyte_class
    if eightbyte_class is EightbyteClass.VOID:
        result.entries[RETVAL] = Location.unknown()
    elif eightbyte_class is EightbyteClass.FLOAT:
        result.entries[RETVAL] = Location.register(X86_FLOAT_REGISTER)
    elif eightbyte_class is EightbyteClass.INTEGRAL:
        result.entries[RETVAL] = Location.register(X86_INTEGRAL_REGISTER)
    elif eightbyte_class is EightbyteClass.MEMORY:
        # address of caller-provided storage is argument word zero
        if check_fast_call(symbol, abi.arch):
            result.entries[RESULT_PTR] = Location.register(RESULT_PTR_REGISTER_FASTCALL)
        else:
            result.entries[RESULT_PTR] = Location.stack(0)
    else:
        raise AbiViewerError(f"Eightbyte class {eightbyte_class.value} is not valid on x86.")


def return_convention(abi: AbiDump, symbol: SymbolRecord) -> ConventionResult:
    result = ConventionResult()
    if symbol.constructor or symbol.destructor or symbol.return_type is None:
        return result
    if abi.arch == "x86":
        _x86_return(abi, symbol, result)
    elif abi.arch == "x86_64":
        _x86_64_return(abi, symbol, result)
    else:
        raise AbiViewerError(f"Unsupported architecture for calling conventions: {abi.arch}")
    return result


def param_convention(abi: AbiDump, symbol: SymbolRecord, position: int) -> ConventionResult:
    result = ConventionResult()
    param = symbol.param_at(position)
    if param is None:
        result.warn(f"{symbol.identity} has no parameter at position {position}")
        return result

    if type_name(abi, param.type_id) == ELLIPSIS_NAME:
        result.entries[ELLIPSIS_NAME] = Location.stack(None)
        return result

    if param.stack_offset is not None:
        result.entries[param.name] = param.stack_offset
        return result

    registers = symbol.registers.get(position, {})
    if len(registers) == 1:
        result.entries[param.name] = Location.register(next(iter(registers.values())))
        return result

    if len(registers) > 1:
        record = get_type(abi, resolve_pure_type(abi, param.type_id))
        members = sorted(record.members, key=lambda item: item.position, reverse=True) if record else []
        if not members:
            result.entries[param.name] = Location.register(registers[min(registers)])
            return result

        claimed: dict[int, str] = {}
        for suboffset in sorted(registers, reverse=True):
            for member in members:
                if member.position not in claimed and member.offset >= suboffset:
                    claimed[member.position] = registers[suboffset]
        for member in sorted(members, key=lambda item: item.position):
            subject = f"{param.name}.{member.name}"
            if member.position in claimed:
                result.entries[subject] = Location.register(claimed[member.position])
            else:
                result.entries[subject] = Location.unknown()
                result.warn(f"missed calling convention for {subject} in {symbol.identity}")
        return result

    result.entries[param.name] = Location.unknown()
    result.warn(f"missed calling convention for {param.name} in {symbol.identity}")
    return result


def sort_conv(abi: AbiDump, type_id: str | None, subjects: list[str]) -> list[str]:
    """Order subjects by the position of the member they name; whole values first."""
    record = get_type(abi, resolve_pure_type(abi, type_id))
    positions: dict[str, int] = {}
    if record is not None:
        for member in record.members:
            positions.setdefault(member.name, member.position)

    def _key(subject: str) -> int:
        match = _MEMBER_SUBJECT_RE.match(subject)
        if match:
            return positions.get(match.group(2), 0)
        return 0

    return sorted(subjects, key=_key)


def _subject_type(abi: AbiDump, owner_type: str | None, subject: str, prefix: str) -> str | None:
    if subject.startswith(prefix + "."):
        found = member_type(abi, owner_type, subject[len(prefix) + 1 :])
        if found is not None:
            return found
    return owner_type


def calling_sequence(abi: AbiDump, symbol: SymbolRecord) -> list[ConventionPart]:
    """Every parameter and return-value part with its type, size and location."""
    parts: list[ConventionPart] = []

    for param in symbol.params:
        result = param_convention(abi, symbol, param.position)
        for subject in sort_conv(abi, param.type_id, list(result.entries)):
            if subject == ELLIPSIS_NAME:
                parts.append(
                    ConventionPart(
                        subject=subject,
                        type_id=param.type_id,
                        type_name=ELLIPSIS_NAME,
                        size=None,
                        location=result.entries[subject],
                        position=param.position,
                        order=len(parts),
                    )
                )
                continue
            part_type = _subject_type(abi, param.type_id, subject, param.name)
            parts.append(
                ConventionPart(
                    subject=subject,
                    type_id=part_type,
                    type_name=type_name(abi, part_type),
                    size=type_size(abi, part_type),
                    location=result.entries[subject],
                    position=param.position,
                    order=len(parts),
                )
            )

    if symbol.return_type is not None and type_name(abi, symbol.return_type) != "void":
        result = return_convention(abi, symbol)
        for subject in sort_conv(abi, symbol.return_type, list(result.entries)):
            if subject == RESULT_PTR:
                parts.append(
                    ConventionPart(
                        subject=subject,
                        type_id=symbol.return_type,
                        type_name=type_name(abi, symbol.return_type) + "*",
                        size=abi.word_size,
                        location=result.entries[subject],
                        position=None,
                        order=len(parts),
                    )
                )
                continue
            part_type = _subject_type(abi, symbol.return_type, subject, RETVAL)
            parts.append(
                ConventionPart(
                    subject=subject,
                    type_id=part_type,
                    type_name=type_name(abi, part_type),
                    size=type_size(abi, part_type),
                    location=result.entries[subject],
                    position=None,
                    order=len(parts),
                )
            )

    return parts


def stack_frame(abi: AbiDump, symbol: SymbolRecord, parts: list[ConventionPart] | None = None) -> list[StackSlot]:
    if parts is None:
        parts = calling_sequence(abi, symbol)

    slots: list[StackSlot] = []
    for part in parts:
        if part.is_return and part.location.is_stack and part.location.offset is not None:
            slots.append(
                StackSlot(offset=part.location.offset, subject=part.subject, type_name=part.type_name, size=part.size or 0)
            )

    by_offset: dict[int, ConventionPart] = {}
    for part in parts:
        if part.is_return or not part.location.is_stack or part.location.offset is None:
            continue
        by_offset.setdefault(part.location.offset, part)

    order = sorted(by_offset)
    if order and order[0] < 0:
        order.reverse()

    for index, offset in enumerate(order):
        part = by_offset[offset]
        size = part.size or 0
        slots.append(StackSlot(offset=offset, subject=part.subject, type_name=part.type_name, size=size))
        if index + 1 < len(order):
            gap = abs(order[index + 1] - offset) - size
            if gap > 0:
                padding_offset = offset - size if order[0] < 0 else offset + size
                slots.append(StackSlot(offset=padding_offset, subject="padding", type_name="", size=gap, padding=True))

    if symbol.params and type_name(abi, symbol.params[-1].type_id) == ELLIPSIS_NAME:
        slots.append(StackSlot(offset=None, subject=ELLIPSIS_NAME, type_name=ELLIPSIS_NAME, size=0))
    return slots


def register_usage(abi: AbiDump, symbol: SymbolRecord, parts: list[ConventionPart] | None = None) -> list[ConventionPart]:
    if parts is None:
        parts = calling_sequence(abi, symbol)
    returned = [part for part in parts if part.is_return and part.location.is_register]
    passed = [part for part in parts if not part.is_return and part.location.is_register]
    return returned + passed
