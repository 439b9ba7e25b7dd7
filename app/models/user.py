"""
User model: the authentication identity and the owner of bank accounts.

Each User represents a login credential (email + hashed password), a
customer profile (name, phone) and a role. The role drives every
authorization decision in the API:

  - UNAPPROVED: Signed up, waiting for an employee to approve them.
                Owns no accounts yet.
  - APPROVED:   Customer with a PAYMENT and a SAVINGS account.
  - EMPLOYEE:   Bank employee: may act on any account, approve and delete
                users, search transactions.
  - ADMIN:      Same capabilities as EMPLOYEE.
  - ATM:        Reserved system role held only by the house ATM user. That
                user is created inactive, so it can never log in.

The password is stored as an Argon2id hash: never in plaintext.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class UserRole(str, enum.Enum):
    """
    Defines the role a user holds within the banking system.

    Inherits from str so the enum value serializes naturally to JSON
    and can be stored as a simple string in the database.
    """
    UNAPPROVED = "UNAPPROVED"   # Signed up, not yet approved
    APPROVED = "APPROVED"       # Approved customer
    EMPLOYEE = "EMPLOYEE"       # Bank employee: operational access
    ADMIN = "ADMIN"             # Administrator: operational access
    ATM = "ATM"                 # House ATM system user


EMPLOYEE_ROLES = frozenset({UserRole.EMPLOYEE, UserRole.ADMIN})


class User(Base):
    __tablename__ = "users"

    # Primary key: UUID provides globally unique IDs without sequential guessing
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Email is the login identifier: must be unique and indexed for fast lookups
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password (never store plaintext!)
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    # New signups start UNAPPROVED until an employee approves them
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole),
        default=UserRole.UNAPPROVED,
        nullable=False,
    )

    # Inactive users can't log in; the house ATM user is always inactive
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

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
    # lazy="selectin" so the account list is available in async context
    # without an implicit (synchronous) lazy load.
    accounts: Mapped[list["Account"]] = relationship(
        back_populates="owner",
        lazy="selectin",
    )

    @property
    def is_employee(self) -> bool:
        """EMPLOYEE and ADMIN may act on any account."""
        return self.role in EMPLOYEE_ROLES

    def owns_account(self, account) -> bool:
        return account is not None and account.owner_id == self.id
