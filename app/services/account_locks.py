"""
Per-account locks that serialize balance read-modify-write cycles.

Two concurrent transfers touching the same account must never both read the
same starting balance. The ledger engine therefore holds an asyncio.Lock per
IBAN from the moment it reads the account rows until the unit of work is
committed.

Deadlock prevention:
  When a transfer involves two accounts, the locks are always acquired in a
  consistent order (sorted by IBAN). This prevents the classic deadlock:
    - Transfer A->B locks A, then waits for B
    - Transfer B->A locks B, then waits for A

Scope:
  These locks serialize work inside one process. Across processes the
  SELECT ... FOR UPDATE issued by account_service.find_by_iban(for_update=True)
  takes over on databases with row-level locking (PostgreSQL). SQLite has no
  row locks but only ever allows one writer.

Locks live in a WeakValueDictionary: once no coroutine holds or waits on a
lock it is garbage-collected, so the registry does not grow with the number
of accounts ever touched.
"""

import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(iban: str) -> asyncio.Lock:
    lock = _locks.get(iban)
    if lock is None:
        lock = asyncio.Lock()
        _locks[iban] = lock
    return lock


@asynccontextmanager
async def lock_accounts(*ibans: str) -> AsyncIterator[None]:
    """
    Hold the locks of every given IBAN for the duration of the block.

    Duplicates are collapsed and locks are taken in sorted order.

        async with lock_accounts(from_iban, to_iban):
            ...read, validate, mutate, commit...
    """
    # Strong references for the whole block keep the weak registry entries alive
    locks = [_lock_for(iban) for iban in sorted(set(ibans))]
    async with AsyncExitStack() as stack:
        for lock in locks:
            await stack.enter_async_context(lock)
        yield
