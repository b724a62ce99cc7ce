"""
Purchase API Views

REST API endpoints for buying on behalf of the authenticated user and for
reading that user's recent transactions.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ledger.exceptions import LedgerError
from ledger.history import HistoryReader
from ledger.models import Account
from purchases.services import PurchaseCoordinator

logger = logging.getLogger(__name__)


@api_view(['POST'])
def create_purchase(request):
    """
    Create a purchase and distribute commissions.

    POST /api/transactions/buy/

    Body:
    {
        "amount": "100.00"
    }

    Returns:
        201 Created: Purchase committed
        400 Bad Request: Invalid amount
        500 Internal Server Error: Buyer missing, insufficient balance or
            store failure; nothing was persisted
    """
    buyer_id = Account.id_for_user(request.user)
    # A non-object JSON body carries no amount
    amount = request.data.get('amount') if isinstance(request.data, dict) else None
    try:
        result = PurchaseCoordinator().execute(buyer_id, amount)
    except LedgerError as e:
        return Response({'message': str(e)}, status=e.status_code)
    except Exception:
        logger.exception("Unexpected error during purchase for account %s", buyer_id)
        return Response(
            {'message': 'Server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    purchase = result.transaction
    return Response(
        {
            'message': 'Transaction completed successfully and commissions have been distributed.',
            'buyerBalance': str(result.buyer_balance),
            'transaction': {
                'id': str(purchase.id),
                'receiver': str(purchase.receiver_id),
                'type': purchase.kind,
                'amount': str(purchase.amount),
                'createdAt': purchase.created_at.isoformat(),
            },
            'commissionsCreated': result.commissions_created,
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['GET'])
def recent_transactions(request):
    """
    Get the last few transactions of the authenticated user.

    GET /api/transactions/recent/
    """
    account_id = Account.id_for_user(request.user)
    try:
        rows = HistoryReader().recent_transactions(account_id)
    except Exception:
        logger.exception("Error fetching transactions for account %s", account_id)
        return Response(
            {'message': 'Server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response([
        {
            'type': row['type'],
            'amount': str(row['amount']),
            'createdAt': row['created_at'].isoformat(),
        }
        for row in rows
    ])
