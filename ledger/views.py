"""
Ledger API Views

REST API endpoints for topping up the caller's account and reading the
commissions it has received.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from ledger.exceptions import LedgerError
from ledger.history import HistoryReader
from ledger.models import Account
from ledger.services import LedgerService

logger = logging.getLogger(__name__)


@api_view(['POST'])
def add_balance(request):
    """
    Add funds to the authenticated user's account.

    POST /api/add-balance/

    Body:
    {
        "amount": "250.00"
    }

    Returns:
        201 Created: Balance credited
        400 Bad Request: Invalid amount
        500 Internal Server Error: Account missing or store failure
    """
    account_id = Account.id_for_user(request.user)
    amount = request.data.get('amount') if isinstance(request.data, dict) else None
    try:
        account, deposit = LedgerService.add_balance(account_id, amount)
    except LedgerError as e:
        return Response({'message': str(e)}, status=e.status_code)
    except Exception:
        logger.exception("Unexpected error adding balance to account %s", account_id)
        return Response(
            {'message': 'Server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response(
        {
            'message': 'Balance added successfully.',
            'balance': str(account.balance),
            'transaction': {
                'id': str(deposit.id),
                'type': deposit.kind,
                'amount': str(deposit.amount),
                'createdAt': deposit.created_at.isoformat(),
            },
        },
        status=status.HTTP_201_CREATED
    )


@api_view(['GET'])
def recent_commissions(request):
    """
    Get the most recent commissions credited to the authenticated user.

    GET /api/commissions/recent/
    """
    account_id = Account.id_for_user(request.user)
    try:
        rows = HistoryReader().recent_commissions(account_id)
    except Exception:
        logger.exception("Error fetching commissions for account %s", account_id)
        return Response(
            {'message': 'Server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response([
        {
            'level': row['level'],
            'amount': str(row['amount']),
            'sender': str(row['sender']),
            'transaction': str(row['transaction']),
            'createdAt': row['created_at'].isoformat(),
        }
        for row in rows
    ])
