# payoff.py
# Credit card payoff bills: propose, apply or skip the matching card balance change

import logging
from typing import Optional, Tuple

from errors import NotFoundError, ReadOnlyError, StorageError, ValidationError
from models import (
    BillInstance, EntityType, MonthRecord, Operation, PaymentSource, SyncProposal, UndoEntry,
)

logger = logging.getLogger(__name__)


def _require_cents(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Payment amount must be an integer number of cents", field="amount")
    if amount <= 0:
        raise ValidationError("Payment amount must be positive", field="amount")
    return amount


class PayoffSynchronizer:
    """
    Card balances are the amount owed, so paying a card subtracts from it.

    Marking a payoff bill unpaid later does not give the balance back; only a
    manual balance edit or undo does.
    """

    def __init__(self, storage, undo_log):
        self.storage = storage
        self.undo_log = undo_log

    def _locate(self, month: str, instance_id: str) -> Tuple[MonthRecord, int, BillInstance, PaymentSource]:
        record = self.storage.load_month(month)
        if record is None:
            raise NotFoundError("Month", month)
        for index, instance in enumerate(record.bill_instances):
            if instance.id == instance_id:
                break
        else:
            raise NotFoundError("Bill instance", instance_id)
        if not instance.is_payoff:
            raise ValidationError(f"Bill instance {instance_id} is not a payoff bill", field="instance_id")
        source = self.storage.load_payment_source(instance.payoff_source_id)
        if not (source.is_debt and source.pay_off_monthly):
            raise ValidationError(
                f"Payment source {source.id} is not a credit card paid off monthly",
                field="payoff_source_id",
            )
        return record, index, instance, source

    def _propose(self, instance: BillInstance, source: PaymentSource, amount: int) -> SyncProposal:
        proposed = source.balance - amount
        warning = None
        if proposed < 0:
            warning = f"Payment of {amount} exceeds the card balance of {source.balance} by {-proposed}"
        elif amount < source.balance:
            warning = f"Payment of {amount} leaves {proposed} owed on the card"
        return SyncProposal(
            instance_id=instance.id,
            payment_source_id=source.id,
            current_balance=source.balance,
            payment_amount=amount,
            proposed_balance=proposed,
            warning=warning,
        )

    def on_payment_recorded(self, month: str, instance_id: str, amount: int) -> SyncProposal:
        """Work out what paying amount would do to the card balance. Writes nothing."""
        amount = _require_cents(amount)
        _, _, instance, source = self._locate(month, instance_id)
        return self._propose(instance, source, amount)

    def apply_sync(self, month: str, instance_id: str, amount: Optional[int] = None) -> PaymentSource:
        """Subtract the payment from the card balance and mark the payoff bill paid."""
        record, index, instance, source = self._locate(month, instance_id)
        if record.is_read_only:
            raise ReadOnlyError(month)
        amount = _require_cents(instance.amount if amount is None else amount)
        proposal = self._propose(instance, source, amount)
        if proposal.warning:
            logger.warning(f"[{month}] {source.name or source.id}: {proposal.warning}")

        sources = self.storage.load_payment_sources()
        position = next(i for i, s in enumerate(sources) if s.id == source.id)
        pre_image = source.model_dump(mode="json")

        source.balance = proposal.proposed_balance
        record.bill_instances[index] = instance.model_copy(update={"paid": True})
        self.storage.save_payment_source(source)
        try:
            self.storage.save_month(record)
        except StorageError:
            logger.error(f"Could not mark {instance.id} paid; restoring {source.id} balance")
            self.storage.save_payment_source(PaymentSource.model_validate(pre_image))
            raise

        self.undo_log.push(UndoEntry(
            entity_type=EntityType.PAYMENT_SOURCE,
            operation=Operation.UPDATE,
            entity_id=source.id,
            pre_image=pre_image,
            position=position,
        ))
        logger.info(
            f"Applied payoff of {amount} to {source.name or source.id}: "
            f"{proposal.current_balance} -> {proposal.proposed_balance}"
        )
        return source

    def skip_sync(self, month: str, instance_id: str) -> None:
        """Mark the payoff bill paid and leave the card balance alone."""
        record, index, instance, _ = self._locate(month, instance_id)
        if record.is_read_only:
            raise ReadOnlyError(month)
        pre_image = instance.model_dump(mode="json")
        record.bill_instances[index] = instance.model_copy(update={"paid": True})
        self.storage.save_month(record)
        self.undo_log.push(UndoEntry(
            entity_type=EntityType.BILL_INSTANCE,
            operation=Operation.UPDATE,
            entity_id=instance.id,
            pre_image=pre_image,
            month=month,
            position=index,
        ))
        logger.info(f"Marked payoff bill {instance.id} paid without touching the balance")
