# undo.py
# Single-level undo: one held pre-image, replayed back through storage

import logging
from typing import Callable, Dict, List, Optional, Tuple, Union

from errors import NOTHING_TO_UNDO, NothingToUndo, NotFoundError, ReadOnlyError, ValidationError
from models import (
    EntityType, Operation, UndoEntry, TemplateKind, TEMPLATE_MODELS, MONTH_COLLECTIONS,
    PaymentSource,
)

logger = logging.getLogger(__name__)

# Deleting an ad-hoc expense is final
NOT_UNDOABLE = {
    (EntityType.VARIABLE_EXPENSE, Operation.DELETE),
    (EntityType.FREE_FLOWING_EXPENSE, Operation.DELETE),
}

TEMPLATE_ENTITY_KINDS = {
    EntityType.BILL: TemplateKind.BILL,
    EntityType.INCOME: TemplateKind.INCOME,
}


class UndoSlot:
    """Holds at most one undo entry. Pass one in to share it or to isolate tests."""

    def __init__(self):
        self._entry: Optional[UndoEntry] = None

    def put(self, entry: UndoEntry) -> None:
        self._entry = entry

    def peek(self) -> Optional[UndoEntry]:
        return self._entry

    def clear(self) -> None:
        self._entry = None


def index_of(items: List, entity_id: str) -> Optional[int]:
    for i, item in enumerate(items):
        if item.id == entity_id:
            return i
    return None


def _remove(items: List, entity_id: str) -> List:
    return [item for item in items if item.id != entity_id]


def _restore(items: List, entity, position: Optional[int]) -> List:
    """Put entity back: over its current copy if present, else at its old position."""
    items = list(items)
    i = index_of(items, entity.id)
    if i is not None:
        items[i] = entity
    elif position is None or position >= len(items):
        items.append(entity)
    else:
        items.insert(max(0, position), entity)
    return items


class UndoLog:
    def __init__(self, storage, slot: Optional[UndoSlot] = None):
        self.storage = storage
        self.slot = slot if slot is not None else UndoSlot()
        self._replay: Dict[Tuple[EntityType, Operation], Callable[[UndoEntry], None]] = {}
        for entity_type in TEMPLATE_ENTITY_KINDS:
            self._register(entity_type, self._remove_template, self._restore_template)
        self._register(EntityType.PAYMENT_SOURCE, self._remove_source, self._restore_source)
        for entity_type in MONTH_COLLECTIONS:
            self._register(entity_type, self._remove_month_entity, self._restore_month_entity)
        for key in NOT_UNDOABLE:
            self._replay[key] = self._skip
        missing = {(e, o) for e in EntityType for o in Operation} - set(self._replay)
        if missing:
            raise RuntimeError(f"No undo replay registered for {sorted(missing)}")

    def _register(self, entity_type: EntityType, remove, restore) -> None:
        self._replay[(entity_type, Operation.CREATE)] = remove
        self._replay[(entity_type, Operation.UPDATE)] = restore
        self._replay[(entity_type, Operation.DELETE)] = restore

    # ---------- public ----------
    def push(self, entry: UndoEntry) -> None:
        """Hold entry as the one undoable change, replacing whatever was held."""
        if (entry.entity_type, entry.operation) in NOT_UNDOABLE:
            logger.info(
                f"{entry.entity_type.value} {entry.operation.value} is not undoable; undo slot unchanged"
            )
            return
        if entry.entity_type in MONTH_COLLECTIONS and entry.month is None:
            raise ValidationError(f"{entry.entity_type.value} undo entries need a month", field="month")
        self.slot.put(entry)
        logger.info(f"Pushed undo ({entry.entity_type.value}:{entry.entity_id} {entry.operation.value})")

    def undo(self) -> Union[UndoEntry, NothingToUndo]:
        """Reverse the held change and return it, or NOTHING_TO_UNDO if nothing is held."""
        entry = self.slot.peek()
        if entry is None:
            logger.info("No changes to undo")
            return NOTHING_TO_UNDO
        self._replay[(entry.entity_type, entry.operation)](entry)
        # Only forget the entry once the inverse has been written
        self.slot.clear()
        logger.info(f"Undid change ({entry.entity_type.value}:{entry.entity_id} {entry.operation.value})")
        return entry

    def can_undo(self) -> bool:
        return self.slot.peek() is not None

    # ---------- replay ----------
    def _skip(self, entry: UndoEntry) -> None:
        logger.warning(f"{entry.entity_type.value} {entry.operation.value} cannot be undone")

    def _remove_template(self, entry: UndoEntry) -> None:
        kind = TEMPLATE_ENTITY_KINDS[entry.entity_type]
        items = self.storage.load_templates(kind)
        self.storage.save_templates(kind, _remove(items, entry.entity_id))

    def _restore_template(self, entry: UndoEntry) -> None:
        kind = TEMPLATE_ENTITY_KINDS[entry.entity_type]
        entity = TEMPLATE_MODELS[kind].model_validate(entry.pre_image)
        items = self.storage.load_templates(kind)
        self.storage.save_templates(kind, _restore(items, entity, entry.position))

    def _remove_source(self, entry: UndoEntry) -> None:
        items = self.storage.load_payment_sources()
        self.storage.save_payment_sources(_remove(items, entry.entity_id))

    def _restore_source(self, entry: UndoEntry) -> None:
        entity = PaymentSource.model_validate(entry.pre_image)
        items = self.storage.load_payment_sources()
        self.storage.save_payment_sources(_restore(items, entity, entry.position))

    def _load_month(self, entry: UndoEntry):
        record = self.storage.load_month(entry.month)
        if record is None:
            raise NotFoundError("Month", entry.month)
        if record.is_read_only:
            raise ReadOnlyError(entry.month)
        return record

    def _remove_month_entity(self, entry: UndoEntry) -> None:
        record = self._load_month(entry)
        attr, _ = MONTH_COLLECTIONS[entry.entity_type]
        setattr(record, attr, _remove(getattr(record, attr), entry.entity_id))
        self.storage.save_month(record)

    def _restore_month_entity(self, entry: UndoEntry) -> None:
        record = self._load_month(entry)
        attr, model = MONTH_COLLECTIONS[entry.entity_type]
        entity = model.model_validate(entry.pre_image)
        setattr(record, attr, _restore(getattr(record, attr), entity, entry.position))
        self.storage.save_month(record)
