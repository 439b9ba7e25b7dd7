"""
Account model: a bank account, optionally owned by a User.

Each account has:
  - A unique IBAN (the natural key used by transfers), stored in compact
    upper-case form, e.g. "NL91YLDB0417164300"
  - A type: PAYMENT or SAVINGS
  - A balance and three limits, all exact decimals (Numeric(15, 2)):
      daily_limit   : cap on a single transfer (not a rolling daily sum)
      absolute_limit: maximum amount of a single transfer
      balance_limit : lowest balance the account may reach (overdraft
                       floor, often negative)

Lifecycle state:
  An account is either ACTIVE or DEACTIVATED. Deactivation happens when the
  owner is deleted: status flips to DEACTIVATED, deactivated_at records when,
  and owner_id is cleared. Accounts are never hard-deleted, because
  transactions keep referring to their IBAN.

Why Decimal and not float?
  0.1 + 0.2 != 0.3 in IEEE 754. Balances and limits are decimal.Decimal in
  Python and NUMERIC in the database, so every addition and comparison is
  exact to the cent.

Transaction history:
  Accounts hold no list of transactions. History is derived by querying the
  transactions table for rows whose from_account or to_account matches the
  IBAN (see transaction_service.find_by_participant_account).
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


# Exact decimal column: 13 integer digits, 2 fractional digits
Money = Numeric(15, 2, asdecimal=True)


class AccountType(str, enum.Enum):
    PAYMENT = "PAYMENT"
    SAVINGS = "SAVINGS"


class AccountStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Owner of this account; NULL once the owner has been deleted
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    iban: Mapped[str] = mapped_column(
        String(34),
        unique=True,
        nullable=False,
        index=True,
    )

    account_type: Mapped[AccountType] = mapped_column(
        Enum(AccountType),
        nullable=False,
        default=AccountType.PAYMENT,
    )

    status: Mapped[AccountStatus] = mapped_column(
        Enum(AccountStatus),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )

    # Set exactly when status is DEACTIVATED
    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))
    daily_limit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    absolute_limit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_limit: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0.00"))

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    owner: Mapped["User"] = relationship(
        back_populates="accounts",
        lazy="selectin",
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def deactivate(self) -> None:
        """Move to the DEACTIVATED state and detach the owner."""
        self.status = AccountStatus.DEACTIVATED
        self.deactivated_at = datetime.now(timezone.utc)
        self.owner_id = None
        self.owner = None
