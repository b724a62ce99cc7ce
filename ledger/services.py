"""
Ledger Services

Business logic for direct balance operations with transactional guarantees.
"""

import logging

from django.db import DatabaseError

from events.models import Event
from ledger.exceptions import AccountNotFound, StoreFailure
from ledger.models import Account, Transaction
from ledger.money import parse_amount
from ledger.store import AccountStore
from ledger.writer import LedgerWriter

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for ledger operations."""

    @staticmethod
    def add_balance(account_id, amount, store=None, ledger=None):
        """
        Credit an account and record a deposit atomically.

        This method ensures:
        1. The amount is validated before the store is touched
        2. The account row is locked while its balance changes
        3. A deposit Transaction and a BALANCE_ADDED event are written
           in the same atomic unit as the credit

        Returns:
            (account, transaction) tuple

        Raises:
            InvalidAmount, AccountNotFound, StoreFailure
        """
        amount = parse_amount(amount)
        store = store or AccountStore()
        ledger = ledger or LedgerWriter()

        try:
            with store.atomic():
                account = store.get_for_update(account_id)
                if account is None:
                    raise AccountNotFound('Account not found.')

                account.balance += amount
                store.save_balance(account)

                deposit = ledger.record_transaction(
                    receiver=account,
                    kind=Transaction.KIND_DEPOSIT,
                    amount=amount,
                )

                Event.create_event(
                    event_id=f"deposit_{deposit.id}",
                    event_type=Event.BALANCE_ADDED,
                    aggregate_id=str(account.id),
                    aggregate_type='Account',
                    event_data={
                        'transaction_id': str(deposit.id),
                        'amount': str(amount),
                        'balance': str(account.balance),
                    }
                )
        except DatabaseError as exc:
            logger.exception("Deposit to account %s failed in the store", account_id)
            raise StoreFailure(str(exc)) from exc

        logger.info("Added %s to account %s, balance now %s", amount, account.id, account.balance)
        return account, deposit

    @staticmethod
    def get_account_balance(account_id):
        """Get current balance for an account."""
        try:
            return Account.objects.values_list('balance', flat=True).get(pk=account_id)
        except Account.DoesNotExist:
            raise AccountNotFound('Account not found.')
