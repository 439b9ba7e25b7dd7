"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The service layer raises domain-specific errors (like InsufficientBalanceError)
  without importing HTTP concepts. The handler layer then translates these
  into HTTP responses with a consistent body:

      {"detail": "<message>", "error_type": "<machine-readable reason>"}

  Every class carries its own status_code and error_type, so adding a new
  error type only means adding a class here.

Exception hierarchy:
    BankAPIError (base)
    ├── NotAuthenticatedError            : no authenticated actor
    ├── AccessDeniedError                : actor may not act on the resource
    ├── NotFoundError
    │   ├── AccountNotFoundError
    │   ├── TransactionNotFoundError
    │   └── UserNotFoundError
    ├── TransferValidationError          : rejected before any mutation
    │   ├── AccountsNotFoundError
    │   ├── MissingAccountIdentifierError
    │   ├── SameAccountError
    │   ├── SavingsOwnershipViolationError
    │   ├── NonPositiveAmountError
    │   ├── ExceedsAbsoluteLimitError
    │   ├── InsufficientBalanceError
    │   ├── ExceedsDailyLimitError
    │   ├── InvalidAtmTransactionTypeError
    │   └── InsufficientBalanceForWithdrawalError
    ├── NoAssociatedUserError            : ATM on a detached account
    ├── AtmUserNotConfiguredError        : house account missing
    ├── LedgerCommitError                : persistence failed, rolled back
    ├── DuplicateEmailError
    ├── UserAlreadyApprovedError
    └── InvalidCredentialsError
"""

import enum
from decimal import Decimal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class TransferRejection(str, enum.Enum):
    """Machine-checkable reasons a transfer or ATM operation was refused."""
    ACCOUNTS_NOT_FOUND = "accounts_not_found"
    MISSING_ACCOUNT_IDENTIFIER = "missing_account_identifier"
    SAME_ACCOUNT = "same_account"
    SAVINGS_OWNERSHIP_VIOLATION = "savings_ownership_violation"
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    EXCEEDS_ABSOLUTE_LIMIT = "exceeds_absolute_limit"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    EXCEEDS_DAILY_LIMIT = "exceeds_daily_limit"
    INVALID_ATM_TRANSACTION_TYPE = "invalid_atm_transaction_type"
    INSUFFICIENT_BALANCE_FOR_WITHDRAWAL = "insufficient_balance_for_withdrawal"


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 400
    error_type: str = "bank_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def extra_content(self) -> dict:
        """Additional fields merged into the JSON error body."""
        return {}


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------

class NotAuthenticatedError(BankAPIError):
    status_code = 401
    error_type = "not_authenticated"

    def __init__(self):
        super().__init__("User not authenticated")


class AccessDeniedError(BankAPIError):
    """Raised when the actor lacks ownership or role for the resource."""
    status_code = 403
    error_type = "access_denied"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFoundError(BankAPIError):
    status_code = 404
    error_type = "not_found"


class AccountNotFoundError(NotFoundError):
    error_type = "account_not_found"

    def __init__(self, iban: str):
        self.iban = iban
        super().__init__(f"Account not found with IBAN: {iban}")


class TransactionNotFoundError(NotFoundError):
    error_type = "transaction_not_found"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found with ID: {transaction_id}")


class UserNotFoundError(NotFoundError):
    error_type = "user_not_found"

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


# ---------------------------------------------------------------------------
# Transfer validation
# ---------------------------------------------------------------------------

class TransferValidationError(BankAPIError):
    """
    A transfer or ATM request was rejected before any state was touched.

    `reason` is the machine-checkable cause; `error_type` mirrors it in the
    HTTP response.
    """
    status_code = 422
    reason: TransferRejection

    @property
    def error_type(self) -> str:  # type: ignore[override]
        return self.reason.value


class AccountsNotFoundError(TransferValidationError):
    status_code = 404
    reason = TransferRejection.ACCOUNTS_NOT_FOUND

    def __init__(self):
        super().__init__("Accounts not found for the provided IBANs")


class MissingAccountIdentifierError(TransferValidationError):
    reason = TransferRejection.MISSING_ACCOUNT_IDENTIFIER

    def __init__(self):
        super().__init__("Both from account and to account must be provided")


class SameAccountError(TransferValidationError):
    reason = TransferRejection.SAME_ACCOUNT

    def __init__(self):
        super().__init__("From and to accounts cannot be the same")


class SavingsOwnershipViolationError(TransferValidationError):
    status_code = 403
    reason = TransferRejection.SAVINGS_OWNERSHIP_VIOLATION

    def __init__(self):
        super().__init__(
            "Savings accounts can only be used for transfers between "
            "accounts of the same owner"
        )


class NonPositiveAmountError(TransferValidationError):
    reason = TransferRejection.NON_POSITIVE_AMOUNT

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__("Transfer amount must be greater than zero")


class ExceedsAbsoluteLimitError(TransferValidationError):
    reason = TransferRejection.EXCEEDS_ABSOLUTE_LIMIT

    def __init__(self, amount: Decimal, absolute_limit: Decimal):
        self.amount = amount
        self.absolute_limit = absolute_limit
        super().__init__(
            f"Transfer amount {amount} exceeds the account limit of {absolute_limit}"
        )

    def extra_content(self) -> dict:
        return {"absolute_limit": str(self.absolute_limit)}


class InsufficientBalanceError(TransferValidationError):
    """
    Raised when a transfer would push the balance below the account's floor.

    Attributes:
        iban: The account that lacks sufficient funds.
        requested: The amount the actor tried to move.
        balance: The current balance of the account.
        balance_limit: The lowest balance the account may reach.
    """
    reason = TransferRejection.INSUFFICIENT_BALANCE

    def __init__(self, iban: str, requested: Decimal, balance: Decimal, balance_limit: Decimal):
        self.iban = iban
        self.requested = requested
        self.balance = balance
        self.balance_limit = balance_limit
        super().__init__(
            f"Insufficient balance for transfer: requested {requested}, "
            f"balance {balance}, the balance may not drop below {balance_limit}"
        )

    def extra_content(self) -> dict:
        return {
            "requested": str(self.requested),
            "balance": str(self.balance),
            "balance_limit": str(self.balance_limit),
        }


class ExceedsDailyLimitError(TransferValidationError):
    reason = TransferRejection.EXCEEDS_DAILY_LIMIT

    def __init__(self, amount: Decimal, daily_limit: Decimal):
        self.amount = amount
        self.daily_limit = daily_limit
        super().__init__(
            f"Transfer amount {amount} exceeds the daily limit of {daily_limit}"
        )

    def extra_content(self) -> dict:
        return {"daily_limit": str(self.daily_limit)}


class InvalidAtmTransactionTypeError(TransferValidationError):
    reason = TransferRejection.INVALID_ATM_TRANSACTION_TYPE

    def __init__(self, transaction_type):
        self.transaction_type = transaction_type
        super().__init__(f"Invalid transaction type for ATM transaction: {transaction_type}")


class InsufficientBalanceForWithdrawalError(TransferValidationError):
    reason = TransferRejection.INSUFFICIENT_BALANCE_FOR_WITHDRAWAL

    def __init__(self, iban: str, requested: Decimal, balance: Decimal):
        self.iban = iban
        self.requested = requested
        self.balance = balance
        super().__init__(
            f"Insufficient balance for withdrawal: requested {requested}, balance {balance}"
        )

    def extra_content(self) -> dict:
        return {"requested": str(self.requested), "balance": str(self.balance)}


# ---------------------------------------------------------------------------
# ATM / ledger
# ---------------------------------------------------------------------------

class NoAssociatedUserError(BankAPIError):
    """Raised when an ATM operation targets an account with no owner."""
    status_code = 422
    error_type = "no_associated_user"

    def __init__(self, iban: str):
        self.iban = iban
        super().__init__(f"Invalid account {iban}: no user associated")


class AtmUserNotConfiguredError(BankAPIError):
    """Raised when the house ATM account has not been provisioned."""
    status_code = 503
    error_type = "atm_user_not_configured"

    def __init__(self):
        super().__init__("The ATM house account is not configured")


class LedgerCommitError(BankAPIError):
    """
    Raised when persisting a validated transfer fails.

    The whole unit of work (transaction row + both balances) has been rolled
    back by the time this is raised.
    """
    status_code = 500
    error_type = "internal_error"

    def __init__(self):
        super().__init__("The transaction could not be recorded; no changes were made")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class DuplicateEmailError(BankAPIError):
    """Raised when attempting to register with an email that's already in use."""
    status_code = 409
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class UserAlreadyApprovedError(BankAPIError):
    status_code = 409
    error_type = "user_already_approved"

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} is already approved")


class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""
    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain exception handler with the FastAPI application.

    Every BankAPIError subclass maps to its own status code and a JSON body
    of the form {"detail": ..., "error_type": ..., **extra_content()}.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(BankAPIError)
    async def bank_api_error_handler(request: Request, exc: BankAPIError) -> JSONResponse:
        headers = None
        if exc.status_code == 401:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error_type": exc.error_type,
                **exc.extra_content(),
            },
            headers=headers,
        )
