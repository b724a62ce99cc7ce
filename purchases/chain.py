"""
Referral Chain Walk

Lazily follows sponsor references upward from an account. The walk only
reads; crediting is left to the caller.
"""

import logging

logger = logging.getLogger(__name__)

MAX_DEPTH = 10


def walk_upline(store, account, max_depth=MAX_DEPTH):
    """
    Yield (level, sponsor) pairs starting at level 1 for the direct sponsor.

    Stops when an account has no sponsor, when a sponsor reference does not
    resolve, or after `max_depth` levels. Cycles are not detected: an account
    can appear more than once. Every sponsor is re-read through
    `store.get_for_update`, so a caller that writes to a yielded account sees
    its own earlier writes when that account comes round again.
    """
    current = account
    for level in range(1, max_depth + 1):
        sponsor_id = current.sponsor_id
        if sponsor_id is None:
            return

        sponsor = store.get_for_update(sponsor_id)
        if sponsor is None:
            logger.warning(
                "Sponsor %s of account %s does not exist; referral chain ends at level %d",
                sponsor_id, current.pk, level - 1
            )
            return

        yield level, sponsor
        current = sponsor
