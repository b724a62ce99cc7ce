"""
Account Store

Row-level access to accounts inside the caller's atomic unit. Reads lock the
row (SELECT ... FOR UPDATE) so concurrent units touching the same account are
serialised by the database; writes only become durable when the unit commits.
"""

from django.core.exceptions import ValidationError
from django.db import transaction

from ledger.models import Account


class AccountStore:
    """Account persistence scoped to an atomic unit."""

    def atomic(self):
        """Open an atomic unit; every write issued inside commits or rolls back together."""
        return transaction.atomic()

    def get_for_update(self, account_id):
        """Return the locked account, or None if the id does not resolve."""
        if account_id is None:
            return None
        try:
            return Account.objects.select_for_update().get(pk=account_id)
        except (Account.DoesNotExist, ValidationError):
            return None

    def save_balance(self, account):
        account.save(update_fields=['balance', 'updated_at'])
