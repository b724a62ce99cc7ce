"""
Ledger Writer

Appends Transaction and Commission rows. Writes go through the default
connection, so they join whatever atomic unit the caller has open.
"""

from ledger.models import Transaction, Commission


class LedgerWriter:
    """Append-only writer for ledger records."""

    def record_transaction(self, receiver, kind, amount):
        return Transaction.objects.create(receiver=receiver, kind=kind, amount=amount)

    def record_commissions(self, commissions):
        """Batch-insert unsaved Commission instances."""
        if not commissions:
            return []
        return Commission.objects.bulk_create(commissions)
