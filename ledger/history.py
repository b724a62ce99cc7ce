"""
History Reader

Read-only projections over the ledger for the API.
"""

from ledger.models import Transaction, Commission

RECENT_LIMIT = 4


class HistoryReader:
    """Recent ledger activity for a single account."""

    def __init__(self, limit=RECENT_LIMIT):
        self.limit = limit

    def recent_transactions(self, account_id):
        """
        Return the newest transactions where the account is the receiver.

        Each row carries only `type`, `amount` and `created_at`.
        """
        rows = (
            Transaction.objects
            .filter(receiver_id=account_id)
            .order_by('-created_at')
            .values('kind', 'amount', 'created_at')[:self.limit]
        )
        return [
            {
                'type': row['kind'],
                'amount': row['amount'],
                'created_at': row['created_at'],
            }
            for row in rows
        ]

    def recent_commissions(self, account_id):
        """Return the newest commissions credited to the account."""
        rows = (
            Commission.objects
            .filter(receiver_id=account_id)
            .order_by('-created_at')
            .values('level', 'amount', 'sender_id', 'transaction_id', 'created_at')[:self.limit]
        )
        return [
            {
                'level': row['level'],
                'amount': row['amount'],
                'sender': row['sender_id'],
                'transaction': row['transaction_id'],
                'created_at': row['created_at'],
            }
            for row in rows
        ]
