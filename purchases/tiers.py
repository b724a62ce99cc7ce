"""
Commission Tiers

Maps an up-line level (1-indexed distance from the buyer) to its share of
the commission pool. The pool is a fixed fraction of the purchase amount.
"""

from decimal import Decimal

from ledger.money import round_down

POOL_RATE = Decimal('0.20')

# (first level, last level, share of the pool for each level in the band)
COMMISSION_TIERS = (
    (1, 3, Decimal('0.15')),
    (4, 7, Decimal('0.10')),
    (8, 10, Decimal('0.03')),
)


def commission_pool(amount):
    return amount * POOL_RATE


class CommissionTable:
    """Lookup over contiguous tier bands."""

    def __init__(self, tiers=COMMISSION_TIERS):
        self.tiers = tuple(tiers)

    @property
    def max_level(self):
        return max(last for _, last, _ in self.tiers)

    def percentage(self, level):
        """Return the pool share for a level, or None outside the table."""
        for first, last, share in self.tiers:
            if first <= level <= last:
                return share
        return None

    def amount_for(self, level, pool):
        """
        Commission owed at a level, rounded down to the ledger precision.

        Returns Decimal('0') for levels outside the table.
        """
        share = self.percentage(level)
        if share is None:
            return Decimal('0')
        return round_down(pool * share)


DEFAULT_TABLE = CommissionTable()
