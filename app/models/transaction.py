"""
Transaction model: the append-only ledger of money movements.

Every accepted transfer or ATM operation creates exactly ONE Transaction row
describing the movement from one account to another:

  - TRANSFER: customer (or employee) moves money between two accounts
  - DEPOSIT:  house ATM account -> customer account
  - WITHDRAW: customer account -> house ATM account

Key fields:
  - from_account / to_account: the IBANs involved, stored as plain strings
    rather than foreign keys. The historical record stays intact even after
    an account is deactivated or its owner deleted.
  - transfer_amount: always positive (enforced by a CHECK constraint)
  - reference: unique human-readable reference, "TR<epoch millis><6 digits>"
  - timestamp: when the movement was committed (UTC)

Immutability:
  Rows are inserted once by the ledger engine and never updated or deleted.
  There is deliberately no updated_at column and no service function that
  modifies a transaction.

The integer primary key is what employees search for ("numeric id") and
what the reference generator derives its suffix from when it is known.
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Integer, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.account import Money


class TransactionType(str, enum.Enum):
    TRANSFER = "TRANSFER"
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("transfer_amount > 0", name="ck_transactions_positive_amount"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    from_account: Mapped[str] = mapped_column(
        String(34),
        nullable=False,
        index=True,
    )

    to_account: Mapped[str] = mapped_column(
        String(34),
        nullable=False,
        index=True,
    )

    transfer_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Optional description/memo
    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    reference: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
    )

    # Indexed for date-range search and newest-first listing
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType),
        nullable=False,
        default=TransactionType.TRANSFER,
    )
