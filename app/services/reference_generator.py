"""
Reference generator: human-readable transaction references.

Format:
    TR<epoch milliseconds><6-digit suffix>
    e.g. TR1718035200123004217

The suffix is `transaction_id % 1_000_000` when the id is already known and
a random 6-digit number otherwise. References are generated exactly once per
transaction, before the row is inserted, so in the ledger engine the id is
not yet known and the random suffix is used.

Uniqueness:
  Milliseconds plus a random suffix can in theory collide under heavy
  concurrency. unique_reference() checks every candidate against the store
  and draws again on a hit; the UNIQUE constraint on transactions.reference
  is the final backstop.
"""

import random
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.transaction import Transaction

REFERENCE_PREFIX = "TR"
SUFFIX_MODULUS = 1_000_000
MAX_ATTEMPTS = 10

# SystemRandom: suffixes must not be predictable from earlier ones
_random = random.SystemRandom()


def generate_reference(transaction_id: int | None = None, now_ms: int | None = None) -> str:
    """
    Build a reference string.

    Args:
        transaction_id: Id of the transaction, if already assigned.
        now_ms: Epoch milliseconds to embed; defaults to the current time.

    Returns:
        "TR" followed by the millisecond timestamp and a zero-padded
        6-digit suffix.
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000

    if transaction_id is not None:
        suffix = transaction_id % SUFFIX_MODULUS
    else:
        suffix = _random.randrange(SUFFIX_MODULUS)

    return f"{REFERENCE_PREFIX}{now_ms}{suffix:06d}"


async def unique_reference(db: AsyncSession, transaction_id: int | None = None) -> str:
    """
    Generate a reference that no stored transaction uses yet.

    Raises:
        RuntimeError: If MAX_ATTEMPTS candidates in a row were taken,
            which signals a broken clock or random source.
    """
    for _ in range(MAX_ATTEMPTS):
        reference = generate_reference(transaction_id)
        existing = await db.execute(
            select(Transaction.id).where(Transaction.reference == reference)
        )
        if existing.first() is None:
            return reference
        # A known id always yields the same suffix; fall back to random ones
        transaction_id = None
    raise RuntimeError("Failed to generate a unique transaction reference")
