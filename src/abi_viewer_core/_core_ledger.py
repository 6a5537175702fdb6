from __future__ import annotations

from ._core_base import *  # noqa: F401,F403


class EntityKind(Enum):
    TYPE = "T"
    SYMBOL = "S"
    PART = "P"


class StatusField(Enum):
    ADDED = "Added"
    REMOVED = "Removed"
    MAPPED = "Mapped"
    MAPPED_REL = "Mapped_Rel"
    CHANGED_TYPE = "ChangedType"


LedgerKey = tuple[EntityKind, int, str, "int | str"]


class ChangeLedger:
    """Per-position status fields collected during one diff run.

    Every (kind, version, entity id, position) accumulates its own set of
    fields; a position can be both Mapped and ChangedType. A field is
    written once: later writes of a different value are ignored.
    """

    def __init__(self) -> None:
        self._entries: dict[LedgerKey, dict[StatusField, Any]] = {}

    def record(
        self,
        kind: EntityKind,
        version: int,
        entity_id: str,
        position: int | str,
        status: StatusField,
        value: Any = True,
    ) -> bool:
        if version not in (1, 2):
            raise AbiViewerError(f"Ledger version must be 1 or 2, got {version}.")
        fields = self._entries.setdefault((kind, version, str(entity_id), position), {})
        if status in fields:
            if fields[status] != value:
                LOGGER.debug(
                    "Ledger keeps %s=%r for %s/%s/%s/%s (ignored %r)",
                    status.value,
                    fields[status],
                    kind.value,
                    version,
                    entity_id,
                    position,
                    value,
                )
            return False
        fields[status] = value
        return True

    def get(self, kind: EntityKind, version: int, entity_id: str, position: int | str, status: StatusField) -> Any:
        return self._entries.get((kind, version, str(entity_id), position), {}).get(status)

    def has(self, kind: EntityKind, version: int, entity_id: str, position: int | str, status: StatusField) -> bool:
        return status in self._entries.get((kind, version, str(entity_id), position), {})

    def fields(self, kind: EntityKind, version: int, entity_id: str, position: int | str) -> dict[StatusField, Any]:
        return dict(self._entries.get((kind, version, str(entity_id), position), {}))

    def positions(self, kind: EntityKind, version: int, entity_id: str) -> list[int | str]:
        out = [key[3] for key in self._entries if key[0] is kind and key[1] == version and key[2] == str(entity_id)]
        return sorted(out, key=lambda item: (isinstance(item, str), item if isinstance(item, str) else int(item)))

    def __len__(self) -> int:
        return len(self._entries)

    def as_list(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for (kind, version, entity_id, position), fields in self._entries.items():
            out.append(
                {
                    "kind": kind.value,
                    "version": version,
                    "id": entity_id,
                    "position": position,
                    "status": {status.value: value for status, value in fields.items()},
                }
            )
        return out
