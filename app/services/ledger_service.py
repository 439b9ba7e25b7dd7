"""
Ledger service: executes money movements between accounts.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Customer/employee transfers between two accounts (transfer)
  - Cash deposits and withdrawals against the house ATM account
    (atm_transaction)

Every accepted movement produces exactly one Transaction row and changes two
balances by the same amount in opposite directions, so money is never
created or destroyed:

    from.balance + to.balance   is the same before and after

Atomicity:
  The transaction row and both balance updates are one unit of work, and
  this module commits it itself. If anything fails after validation
  (reference generation, insert, balance update, commit) the session is
  rolled back and LedgerCommitError is raised: either all three changes are
  stored or none are.

Rejections:
  Every check runs before any state is touched. A rejected request raises a
  TransferValidationError subclass (or an access/not-found error) and leaves
  no trace: no balance change, no transaction row.

Concurrency:
  The read-validate-mutate-commit cycle runs while holding the per-IBAN
  locks from account_locks (taken in sorted IBAN order) and the accounts are
  re-read with SELECT ... FOR UPDATE and fresh row state. Two concurrent
  transfers from the same account can therefore never both spend the same
  balance.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AccessDeniedError,
    AccountNotFoundError,
    AtmUserNotConfiguredError,
    InsufficientBalanceForWithdrawalError,
    InvalidAtmTransactionTypeError,
    LedgerCommitError,
    MissingAccountIdentifierError,
    NoAssociatedUserError,
    NonPositiveAmountError,
    NotAuthenticatedError,
    SameAccountError,
    TransferValidationError,
)
from app.models.account import Account
from app.models.transaction import Transaction, TransactionType
from app.models.user import User
from app.services import account_service, transaction_service
from app.services.account_locks import lock_accounts
from app.services.reference_generator import unique_reference
from app.services.transfer_validator import validate_transfer

logger = logging.getLogger(__name__)


# A reference lost to a concurrent insert is retried with a fresh one
MAX_RECORD_ATTEMPTS = 3


def _is_reference_collision(exc: IntegrityError) -> bool:
    return "reference" in str(exc.orig)


async def _record(
    db: AsyncSession,
    source: Account,
    destination: Account,
    amount: Decimal,
    transaction_type: TransactionType,
    description: str | None = None,
) -> Transaction:
    """
    Persist one accepted movement and commit it.

    Must be called while the locks of both accounts are held. The reference
    check and the insert are not atomic across account pairs, so when the
    unique index on the reference rejects the insert the whole unit of work
    is rolled back and redone with a new reference, up to
    MAX_RECORD_ATTEMPTS times.

    Raises:
        LedgerCommitError: If anything fails; the session has been rolled
            back by then.
    """
    # Rollback expires the ORM objects; keep plain values for re-reads and logs
    from_iban, to_iban = source.iban, destination.iban

    for attempt in range(1, MAX_RECORD_ATTEMPTS + 1):
        try:
            if attempt > 1:
                source = await account_service.find_by_iban(db, from_iban, for_update=True)
                destination = await account_service.find_by_iban(db, to_iban, for_update=True)

            reference = await unique_reference(db)
            transaction = Transaction(
                from_account=from_iban,
                to_account=to_iban,
                transfer_amount=amount,
                description=description,
                reference=reference,
                timestamp=datetime.now(timezone.utc),
                transaction_type=transaction_type,
            )
            await transaction_service.save_transaction(db, transaction)

            source.balance = source.balance - amount
            destination.balance = destination.balance + amount
            await account_service.save_accounts(db, [source, destination])

            await db.commit()
            return transaction
        except IntegrityError as exc:
            await db.rollback()
            if _is_reference_collision(exc) and attempt < MAX_RECORD_ATTEMPTS:
                logger.warning(
                    "Reference %s already taken while recording %s %s -> %s; retrying (attempt %d)",
                    reference, transaction_type.value, from_iban, to_iban, attempt,
                )
                continue
            logger.exception(
                "Failed to record %s %s -> %s (%s); rolled back",
                transaction_type.value, from_iban, to_iban, amount,
            )
            raise LedgerCommitError() from exc
        except (SQLAlchemyError, RuntimeError) as exc:
            await db.rollback()
            logger.exception(
                "Failed to record %s %s -> %s (%s); rolled back",
                transaction_type.value, from_iban, to_iban, amount,
            )
            raise LedgerCommitError() from exc


async def transfer(
    db: AsyncSession,
    actor: User | None,
    from_iban: str | None,
    to_iban: str | None,
    amount: Decimal,
    description: str | None = None,
) -> Transaction:
    """
    Move `amount` from one account to another.

    Preconditions, checked in this order:
      1. there is an authenticated actor
      2. both IBANs are given
      3. the IBANs differ (after whitespace/case normalization)
      4. the actor owns the from-account, or is an employee (checked again
         on the locked row)

    Then, under the account locks, the transfer validator decides (accounts
    exist, savings ownership, amount > 0, absolute limit, balance floor,
    daily limit) and the accepted movement is recorded and committed.

    Args:
        db: Database session.
        actor: The authenticated user.
        from_iban: Account to debit.
        to_iban: Account to credit.
        amount: Positive decimal amount.
        description: Optional memo stored on the transaction.

    Returns:
        The committed Transaction.

    Raises:
        NotAuthenticatedError, MissingAccountIdentifierError, SameAccountError,
        AccessDeniedError, any TransferValidationError, LedgerCommitError.
    """
    if actor is None:
        raise NotAuthenticatedError()

    from_iban = account_service.normalize_iban(from_iban)
    to_iban = account_service.normalize_iban(to_iban)

    if not from_iban or not to_iban:
        raise MissingAccountIdentifierError()
    if from_iban == to_iban:
        raise SameAccountError()

    if not actor.is_employee:
        owned = await account_service.find_by_iban(db, from_iban)
        # An unknown from-account is reported by the validator below
        if owned is not None and not actor.owns_account(owned):
            raise AccessDeniedError("You can only transfer from your own accounts")

    async with lock_accounts(from_iban, to_iban):
        source = await account_service.find_by_iban(db, from_iban, for_update=True)
        destination = await account_service.find_by_iban(db, to_iban, for_update=True)

        # Ownership may have changed while waiting for the locks
        if source is not None and not actor.is_employee and not actor.owns_account(source):
            raise AccessDeniedError("You can only transfer from your own accounts")

        try:
            validate_transfer(source, destination, amount)
        except TransferValidationError as exc:
            logger.info(
                "Transfer %s -> %s of %s rejected: %s",
                from_iban, to_iban, amount, exc.reason.value,
            )
            raise

        transaction = await _record(
            db, source, destination, amount, TransactionType.TRANSFER, description
        )

    logger.info(
        "Transfer %s: %s -> %s, amount %s",
        transaction.reference, from_iban, to_iban, amount,
    )
    return transaction


def _parse_atm_type(transaction_type) -> TransactionType:
    if isinstance(transaction_type, TransactionType):
        parsed = transaction_type
    else:
        try:
            parsed = TransactionType(str(transaction_type).strip().upper())
        except ValueError:
            raise InvalidAtmTransactionTypeError(transaction_type)
    if parsed not in (TransactionType.DEPOSIT, TransactionType.WITHDRAW):
        raise InvalidAtmTransactionTypeError(transaction_type)
    return parsed


async def atm_transaction(
    db: AsyncSession,
    actor: User | None,
    account_iban: str,
    transaction_type,
    amount: Decimal,
    house_account_iban: str | None,
) -> Transaction:
    """
    Deposit cash into, or withdraw cash from, a customer account.

    The counterparty is the house ATM account:
      - DEPOSIT:  house account -> customer account
      - WITHDRAW: customer account -> house account; the customer balance
        must cover the full amount (the overdraft floor does not apply)

    The house account is exempt from limits and the general transfer
    validator is not run.

    Raises:
        NotAuthenticatedError: No actor.
        AccountNotFoundError: The customer account doesn't exist.
        NoAssociatedUserError: The account has no owner.
        AccessDeniedError: The actor neither owns it nor is an employee.
        AtmUserNotConfiguredError: The house account is missing.
        SameAccountError: The account is the house account itself.
        InvalidAtmTransactionTypeError: Type is not DEPOSIT or WITHDRAW.
        NonPositiveAmountError: amount <= 0.
        InsufficientBalanceForWithdrawalError: Withdrawal exceeds balance.
        LedgerCommitError: Persisting failed; nothing was changed.
    """
    if actor is None:
        raise NotAuthenticatedError()

    iban = account_service.normalize_iban(account_iban)
    account = await account_service.find_by_iban(db, iban)
    if account is None:
        raise AccountNotFoundError(iban)
    if account.owner_id is None:
        raise NoAssociatedUserError(iban)
    if not actor.owns_account(account) and not actor.is_employee:
        raise AccessDeniedError("You can only use the ATM with your own accounts")

    if not house_account_iban:
        raise AtmUserNotConfiguredError()
    house_iban = account_service.normalize_iban(house_account_iban)
    if await account_service.find_by_iban(db, house_iban) is None:
        raise AtmUserNotConfiguredError()
    if iban == house_iban:
        raise SameAccountError()

    kind = _parse_atm_type(transaction_type)

    if amount <= 0:
        raise NonPositiveAmountError(amount)

    async with lock_accounts(iban, house_iban):
        account = await account_service.find_by_iban(db, iban, for_update=True)
        house = await account_service.find_by_iban(db, house_iban, for_update=True)

        if kind == TransactionType.WITHDRAW:
            if account.balance < amount:
                logger.info(
                    "Withdrawal of %s from %s rejected: balance %s",
                    amount, iban, account.balance,
                )
                raise InsufficientBalanceForWithdrawalError(iban, amount, account.balance)
            source, destination = account, house
        else:
            source, destination = house, account

        transaction = await _record(db, source, destination, amount, kind)

    logger.info("ATM %s %s: %s, amount %s", kind.value, transaction.reference, iban, amount)
    return transaction
