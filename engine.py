# engine.py
# Entry point for callers: month generation, leftover, payoff sync, entity edits and undo

import datetime as dt
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

import pandas as pd
from pydantic import BaseModel, ValidationError as PydanticValidationError

from data import JsonStorage
from errors import ConflictError, NotFoundError, NothingToUndo, ReadOnlyError, ValidationError
from generator import InstanceGenerator
from leftover import LeftoverCalculator
from models import (
    EntityType, LeftoverBreakdown, MonthRecord, Operation, PaymentSource, SyncProposal,
    UndoEntry, MONTH_COLLECTIONS, TEMPLATE_MODELS,
)
from payoff import PayoffSynchronizer
from undo import TEMPLATE_ENTITY_KINDS, UndoLog, UndoSlot, index_of

logger = logging.getLogger(__name__)

PAID_FIELDS = {
    EntityType.BILL_INSTANCE: "paid",
    EntityType.INCOME_INSTANCE: "received",
}


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(v.value for v in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field) from None


def _build(model: Type[BaseModel], data: Dict[str, Any]) -> BaseModel:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid {model.__name__}: {first['msg']}", field=field) from e


class BudgetEngine:
    """
    Everything a caller needs, over one storage collaborator.

    Each mutation validates first, writes once, then records its pre-image
    in the undo slot. Pass an UndoSlot to share undo state between engines.
    """

    def __init__(self, storage=None, undo_slot: Optional[UndoSlot] = None):
        self.storage = storage if storage is not None else JsonStorage()
        self.undo_log = UndoLog(self.storage, undo_slot)
        self.generator = InstanceGenerator(self.storage)
        self.calculator = LeftoverCalculator(self.storage)
        self.payoff = PayoffSynchronizer(self.storage, self.undo_log)

    # ---------- Months ----------
    def generate_month(self, month: str) -> MonthRecord:
        return self.generator.generate_month(month)

    def set_read_only(self, month: str, read_only: bool) -> MonthRecord:
        record = self.storage.load_month(month)
        if record is None:
            raise NotFoundError("Month", month)
        record.is_read_only = bool(read_only)
        self.storage.save_month(record)
        logger.info(f"Month {month} {'locked' if read_only else 'unlocked'}")
        return record

    def _writable_month(self, month: Optional[str]) -> MonthRecord:
        if not month:
            raise ValidationError("month is required for month-scoped entities", field="month")
        record = self.storage.load_month(month)
        if record is None:
            raise NotFoundError("Month", month)
        if record.is_read_only:
            raise ReadOnlyError(month)
        return record

    # ---------- Leftover ----------
    def compute_leftover(self, month: str) -> int:
        return self.calculator.compute_leftover(month)

    def leftover_breakdown(self, month: str) -> LeftoverBreakdown:
        return self.calculator.breakdown(month)

    def tally(self, month: str) -> pd.DataFrame:
        return self.calculator.tally(month)

    def category_subtotals(self, month: str) -> pd.DataFrame:
        return self.calculator.category_subtotals(month)

    def overdue_bills(self, month: str, today: Optional[dt.date] = None) -> pd.DataFrame:
        return self.calculator.overdue_bills(month, today)

    # ---------- CC payoff ----------
    def record_payment(self, month: str, instance_id: str, amount: int) -> SyncProposal:
        return self.payoff.on_payment_recorded(month, instance_id, amount)

    def apply_sync(self, month: str, instance_id: str, amount: Optional[int] = None) -> PaymentSource:
        return self.payoff.apply_sync(month, instance_id, amount)

    def skip_sync(self, month: str, instance_id: str) -> None:
        self.payoff.skip_sync(month, instance_id)

    def set_paid(self, entity_type: Union[EntityType, str], month: str, instance_id: str, paid: bool):
        """Mark an instance paid/received or not. Balances are never touched."""
        entity_type = _coerce(EntityType, entity_type, "entity_type")
        if entity_type not in PAID_FIELDS:
            raise ValidationError(f"{entity_type.value} has no paid flag", field="entity_type")
        payload = {"id": instance_id, "month": month, PAID_FIELDS[entity_type]: bool(paid)}
        return self.mutate_entity(entity_type, Operation.UPDATE, payload)

    # ---------- Entities ----------
    def _collection(self, entity_type: EntityType, payload: Dict[str, Any]) -> Tuple[
        Type[BaseModel], List, Callable[[List], None], Optional[str]
    ]:
        """The model, current items and a saver for the list holding entity_type."""
        if entity_type in MONTH_COLLECTIONS:
            month = payload.get("month")
            record = self._writable_month(month)
            attr, model = MONTH_COLLECTIONS[entity_type]

            def save(items):
                setattr(record, attr, items)
                self.storage.save_month(record)

            return model, list(getattr(record, attr)), save, month

        if entity_type in TEMPLATE_ENTITY_KINDS:
            kind = TEMPLATE_ENTITY_KINDS[entity_type]
            return (
                TEMPLATE_MODELS[kind],
                self.storage.load_templates(kind),
                lambda items: self.storage.save_templates(kind, items),
                None,
            )

        return PaymentSource, self.storage.load_payment_sources(), self.storage.save_payment_sources, None

    def _check_references(self, entity_type: EntityType, operation: Operation, entity, items: List) -> None:
        if entity_type in TEMPLATE_ENTITY_KINDS and operation != Operation.DELETE:
            self.storage.load_payment_source(entity.payment_source_id)

        if entity_type == EntityType.PAYMENT_SOURCE and operation == Operation.DELETE:
            for kind in TEMPLATE_ENTITY_KINDS.values():
                users = [t.name for t in self.storage.load_templates(kind) if t.payment_source_id == entity.id]
                if users:
                    raise ConflictError(
                        f"Payment source {entity.id} is still used by: {', '.join(users)}"
                    )

        if entity_type in PAID_FIELDS and operation != Operation.DELETE and entity.template_id:
            clashes = [
                i for i in items
                if i.template_id == entity.template_id and i.occurrence_date == entity.occurrence_date
            ]
            if len(clashes) > 1:
                raise ConflictError(
                    f"{entity.month} already has an instance of {entity.template_id} on {entity.occurrence_date}"
                )

    def mutate_entity(self, entity_type: Union[EntityType, str], operation: Union[Operation, str],
                      payload: Dict[str, Any]):
        """
        Create, update or delete one entity and record how to reverse it.

        create  payload is the full entity; id is generated when absent
        update  payload is the id plus the fields to change
        delete  payload is the id

        Month-scoped entities (instances, expenses) also need 'month'.
        Returns the created/updated entity, or the removed one for delete.
        """
        entity_type = _coerce(EntityType, entity_type, "entity_type")
        operation = _coerce(Operation, operation, "operation")
        if not isinstance(payload, dict):
            raise ValidationError("payload must be a mapping of entity fields", field="payload")

        model, items, save, month = self._collection(entity_type, payload)

        if operation == Operation.CREATE:
            entity = _build(model, payload)
            if index_of(items, entity.id) is not None:
                raise ConflictError(f"{entity_type.value} with id {entity.id} already exists")
            pre_image, position = None, None
            new_items = items + [entity]
        else:
            entity_id = payload.get("id")
            if not entity_id:
                raise ValidationError(f"id is required to {operation.value} a {entity_type.value}", field="id")
            position = index_of(items, entity_id)
            if position is None:
                raise NotFoundError(entity_type.value, entity_id)
            current = items[position]
            pre_image = current.model_dump(mode="json")
            new_items = list(items)
            if operation == Operation.UPDATE:
                entity = _build(model, {**pre_image, **payload})
                new_items[position] = entity
            else:
                entity = current
                del new_items[position]

        self._check_references(entity_type, operation, entity, new_items)
        save(new_items)
        self.undo_log.push(UndoEntry(
            entity_type=entity_type,
            operation=operation,
            entity_id=entity.id,
            pre_image=pre_image,
            month=month,
            position=position,
        ))
        logger.info(f"{operation.value} {entity_type.value} {entity.id}")
        return entity

    # ---------- Undo ----------
    def undo(self) -> Union[UndoEntry, NothingToUndo]:
        return self.undo_log.undo()

    def can_undo(self) -> bool:
        return self.undo_log.can_undo()
