"""
Ledger Domain Exceptions

Raising any of these inside an atomic unit rolls the unit back. Each carries
the HTTP status the API reports for it.
"""


class LedgerError(Exception):
    """Base exception for ledger and purchase failures"""
    status_code = 500
    default_message = 'Ledger operation failed.'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class InvalidAmount(LedgerError):
    """Raised when an amount is missing, non-numeric, non-finite or not positive"""
    status_code = 400
    default_message = 'Please provide a valid transaction amount.'


class AccountNotFound(LedgerError):
    """Raised when the account an operation acts on does not exist"""
    default_message = 'Buyer not found.'


class InsufficientBalance(LedgerError):
    """Raised when the buyer's balance is below the purchase amount"""
    default_message = 'Insufficient balance to complete the transaction.'


class StoreFailure(LedgerError):
    """Raised when the database fails inside an atomic unit (already rolled back)"""
    default_message = 'The ledger store failed; no changes were applied.'
