from errors import NOTHING_TO_UNDO
from models import Bill, EntityType, Operation, TemplateKind, UndoEntry
from undo import NOT_UNDOABLE, UndoLog, UndoSlot


def _bill_entry(bill, operation=Operation.UPDATE, position=0):
    return UndoEntry(
        entity_type=EntityType.BILL,
        operation=operation,
        entity_id=bill.id,
        pre_image=None if operation == Operation.CREATE else bill.model_dump(mode="json"),
        position=None if operation == Operation.CREATE else position,
    )


def test_empty_log_has_nothing_to_undo(storage):
    log = UndoLog(storage)
    assert log.undo() is NOTHING_TO_UNDO
    assert not log.can_undo()


def test_push_replaces_held_entry(storage):
    first = Bill(name="Rent", amount=1000, payment_source_id="chk")
    second = Bill(name="Phone", amount=2000, payment_source_id="chk")
    log = UndoLog(storage)
    log.push(_bill_entry(first))
    log.push(_bill_entry(second))

    assert log.slot.peek().entity_id == second.id
    assert log.undo().entity_id == second.id
    assert log.undo() is NOTHING_TO_UNDO


def test_logs_with_separate_slots_are_independent(storage):
    bill = Bill(name="Rent", amount=1000, payment_source_id="chk")
    a, b = UndoLog(storage), UndoLog(storage)
    a.push(_bill_entry(bill))

    assert a.can_undo()
    assert not b.can_undo()


def test_shared_slot(storage):
    slot = UndoSlot()
    bill = Bill(name="Rent", amount=1000, payment_source_id="chk")
    UndoLog(storage, slot).push(_bill_entry(bill))
    assert UndoLog(storage, slot).can_undo()


def test_create_is_undone_by_removal(storage):
    keep = Bill(name="Rent", amount=1000, payment_source_id="chk")
    added = Bill(name="Phone", amount=2000, payment_source_id="chk")
    storage.save_templates(TemplateKind.BILL, [keep, added])
    log = UndoLog(storage)
    log.push(_bill_entry(added, Operation.CREATE))

    log.undo()

    assert storage.load_templates(TemplateKind.BILL) == [keep]


def test_delete_is_undone_at_original_position(storage):
    a = Bill(name="A", amount=1, payment_source_id="chk")
    b = Bill(name="B", amount=2, payment_source_id="chk")
    c = Bill(name="C", amount=3, payment_source_id="chk")
    storage.save_templates(TemplateKind.BILL, [a, c])
    log = UndoLog(storage)
    log.push(_bill_entry(b, Operation.DELETE, position=1))

    log.undo()

    assert [t.name for t in storage.load_templates(TemplateKind.BILL)] == ["A", "B", "C"]


def test_expense_deletes_are_not_pushed(storage):
    bill = Bill(name="Rent", amount=1000, payment_source_id="chk")
    log = UndoLog(storage)
    log.push(_bill_entry(bill))
    for entity_type, operation in NOT_UNDOABLE:
        log.push(UndoEntry(
            entity_type=entity_type,
            operation=operation,
            entity_id="x",
            pre_image={"id": "x"},
            month="2025-01",
        ))

    assert log.slot.peek().entity_type == EntityType.BILL


def test_replay_covers_every_entity_and_operation(storage):
    log = UndoLog(storage)
    assert set(log._replay) == {(e, o) for e in EntityType for o in Operation}
