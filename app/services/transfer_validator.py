"""
Transfer validator: the pure accept/reject decision for a transfer.

validate_transfer() looks only at the two account rows and the amount. It
never touches the database and never mutates its inputs, so a rejection has
no side effects by construction.

Checks run in a fixed order so the same request always reports the same
reason:

  1. both accounts exist                          AccountsNotFoundError
  2. SAVINGS involved -> both have the same owner SavingsOwnershipViolationError
  3. amount > 0                                   NonPositiveAmountError
  4. amount <= absolute_limit                     ExceedsAbsoluteLimitError
  5. balance - amount >= balance_limit            InsufficientBalanceError
  6. amount <= daily_limit                        ExceedsDailyLimitError

The daily limit is a cap on the single transfer, not a sum over the
calendar day.
"""

from decimal import Decimal

from app.exceptions import (
    AccountsNotFoundError,
    ExceedsAbsoluteLimitError,
    ExceedsDailyLimitError,
    InsufficientBalanceError,
    NonPositiveAmountError,
    SavingsOwnershipViolationError,
)
from app.models.account import Account, AccountType


def _same_owner(first: Account, second: Account) -> bool:
    # A detached account (owner deleted) has no owner to match
    return first.owner_id is not None and first.owner_id == second.owner_id


def validate_transfer(
    from_account: Account | None,
    to_account: Account | None,
    amount: Decimal,
) -> None:
    """
    Accept the transfer by returning, reject it by raising.

    Raises:
        TransferValidationError: The subclass for the first failing check.
    """
    if from_account is None or to_account is None:
        raise AccountsNotFoundError()

    if AccountType.SAVINGS in (from_account.account_type, to_account.account_type):
        if not _same_owner(from_account, to_account):
            raise SavingsOwnershipViolationError()

    if amount <= 0:
        raise NonPositiveAmountError(amount)

    if amount > from_account.absolute_limit:
        raise ExceedsAbsoluteLimitError(amount, from_account.absolute_limit)

    if from_account.balance - amount < from_account.balance_limit:
        raise InsufficientBalanceError(
            iban=from_account.iban,
            requested=amount,
            balance=from_account.balance,
            balance_limit=from_account.balance_limit,
        )

    if amount > from_account.daily_limit:
        raise ExceedsDailyLimitError(amount, from_account.daily_limit)
