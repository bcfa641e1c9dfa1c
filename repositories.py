from typing import List
import asyncio

from config import Settings
from errors import NotFoundError
from models import Account, Transaction
from storage import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore


class AccountRepository:
    """Account table. Every store access runs under the repository lock."""

    def __init__(self, store: KeyValueStore[int, Account]):
        self.store = store
        self.lock = asyncio.Lock()

    async def get_or_create(self, client_id: int) -> Account:
        """Get a working copy of the account, creating and persisting it if missing."""
        async with self.lock:
            try:
                account = await self.store.get(client_id)
            except NotFoundError:
                account = Account(id=client_id)
                await self.store.set(client_id, account)
            return account.model_copy()

    async def get(self, client_id: int) -> Account:
        """Get a copy of an existing account. Raises NotFoundError."""
        async with self.lock:
            account = await self.store.get(client_id)
            return account.model_copy()

    async def save(self, account: Account) -> None:
        async with self.lock:
            await self.store.set(account.id, account.model_copy())

    async def drain(self) -> List[Account]:
        """Return all accounts ordered by client id."""
        async with self.lock:
            items = await self.store.items()
        return [account for _, account in sorted(items, key=lambda item: item[0])]

    async def get_accounts_count(self) -> int:
        async with self.lock:
            return await self.store.count()

    async def close(self) -> None:
        await self.store.close()


class LedgerRepository:
    """Deposits and withdrawals by transaction id, for dispute lookups."""

    def __init__(self, store: KeyValueStore[int, Transaction]):
        self.store = store
        self.lock = asyncio.Lock()

    async def record(self, transaction: Transaction) -> None:
        async with self.lock:
            await self.store.set(transaction.id, transaction)

    async def get_transaction(self, transaction_id: int) -> Transaction:
        """Get stored transaction. Raises NotFoundError."""
        async with self.lock:
            return await self.store.get(transaction_id)

    async def get_transactions_count(self) -> int:
        async with self.lock:
            return await self.store.count()

    async def close(self) -> None:
        await self.store.close()


def _resumes_from_disk(settings: Settings) -> bool:
    # Recorded transactions are only meaningful next to the balances they produced
    return settings.account_backend == "sqlite" and settings.ledger_backend == "sqlite"


def create_account_repository(settings: Settings) -> AccountRepository:
    if settings.account_backend == "sqlite":
        return AccountRepository(SqliteKeyValueStore(
            Account, settings.account_path, table="accounts", truncate=not _resumes_from_disk(settings)
        ))
    return AccountRepository(InMemoryKeyValueStore())


def create_ledger_repository(settings: Settings) -> LedgerRepository:
    if settings.ledger_backend == "sqlite":
        return LedgerRepository(SqliteKeyValueStore(
            Transaction, settings.ledger_path, table="transactions", truncate=not _resumes_from_disk(settings)
        ))
    return LedgerRepository(InMemoryKeyValueStore())
