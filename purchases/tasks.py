"""
Celery Tasks for Purchase Processing

A purchase either commits completely or leaves no trace, so a task that
failed in the store can simply be run again from the start.
"""

import logging

from celery import shared_task

from ledger.exceptions import LedgerError, StoreFailure
from purchases.services import PurchaseCoordinator

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=5)
def execute_purchase_task(self, buyer_id, amount):
    """
    Execute a purchase in a worker.

    Args:
        buyer_id: UUID of the buyer account
        amount: Purchase amount as a string (JSON-serialisable)
    """
    try:
        result = PurchaseCoordinator().execute(buyer_id, amount)
    except StoreFailure as exc:
        # Nothing was persisted; retry the whole purchase
        raise self.retry(exc=exc)
    except LedgerError as exc:
        logger.info("Purchase task for %s not retried: %s", buyer_id, exc)
        return {'error': str(exc)}

    return {
        'transaction_id': str(result.transaction.id),
        'buyer_balance': str(result.buyer_balance),
        'commissions_created': result.commissions_created,
    }
