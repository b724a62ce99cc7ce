"""
Purchase Services

Debits a buyer and distributes referral commissions up the sponsor chain as
one atomic unit: either the debit, the purchase Transaction, every
Commission, every sponsor credit and the audit event are committed together,
or none of them are.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import DatabaseError

from events.models import Event
from ledger.exceptions import AccountNotFound, InsufficientBalance, StoreFailure
from ledger.models import Commission, Transaction
from ledger.money import parse_amount
from ledger.store import AccountStore
from ledger.writer import LedgerWriter
from purchases.chain import walk_upline
from purchases.tiers import DEFAULT_TABLE, commission_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    buyer_balance: Decimal
    transaction: Transaction
    commissions_created: int


class PurchaseCoordinator:
    """Service for purchases with multilevel commission distribution."""

    def __init__(self, store=None, ledger=None, table=None):
        self.store = store or AccountStore()
        self.ledger = ledger or LedgerWriter()
        self.table = table or DEFAULT_TABLE

    def execute(self, buyer_id, amount):
        """
        Debit the buyer and pay commissions to up to ten sponsors.

        The amount is validated before the store is touched. Everything else
        runs inside `store.atomic()`; any exception raised there rolls the
        whole unit back before it reaches the caller.

        Returns:
            PurchaseResult

        Raises:
            InvalidAmount, AccountNotFound, InsufficientBalance, StoreFailure
        """
        amount = parse_amount(amount)

        try:
            with self.store.atomic():
                result = self._purchase(buyer_id, amount)
        except (AccountNotFound, InsufficientBalance) as exc:
            logger.warning("Purchase of %s by %s rejected: %s", amount, buyer_id, exc)
            raise
        except DatabaseError as exc:
            logger.exception("Purchase of %s by %s rolled back after store failure", amount, buyer_id)
            raise StoreFailure(str(exc)) from exc

        logger.info(
            "Purchase %s committed: buyer %s paid %s, %d commission(s) created",
            result.transaction.id, buyer_id, amount, result.commissions_created
        )
        return result

    def _purchase(self, buyer_id, amount):
        buyer = self.store.get_for_update(buyer_id)
        if buyer is None:
            raise AccountNotFound()

        if buyer.balance < amount:
            raise InsufficientBalance()

        buyer.balance -= amount
        self.store.save_balance(buyer)
        buyer_balance = buyer.balance

        purchase = self.ledger.record_transaction(
            receiver=buyer,
            kind=Transaction.KIND_BUY,
            amount=-amount,
        )

        pool = commission_pool(amount)
        commissions = []
        for level, sponsor in walk_upline(self.store, buyer, max_depth=self.table.max_level):
            payout = self.table.amount_for(level, pool)
            if payout <= 0:
                continue

            sponsor.balance += payout
            self.store.save_balance(sponsor)
            commissions.append(Commission(
                sender=buyer,
                receiver=sponsor,
                transaction=purchase,
                level=level,
                amount=payout,
            ))

        self.ledger.record_commissions(commissions)

        Event.create_event(
            event_id=f"purchase_{purchase.id}",
            event_type=Event.PURCHASE_COMPLETED,
            aggregate_id=str(buyer.id),
            aggregate_type='Account',
            event_data={
                'transaction_id': str(purchase.id),
                'amount': str(amount),
                'buyer_balance': str(buyer_balance),
                'commissions': [
                    {
                        'receiver_id': str(commission.receiver_id),
                        'level': commission.level,
                        'amount': str(commission.amount),
                    }
                    for commission in commissions
                ],
            }
        )

        return PurchaseResult(
            buyer_balance=buyer_balance,
            transaction=purchase,
            commissions_created=len(commissions),
        )
