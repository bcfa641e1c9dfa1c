"""
Producer/consumer ingestion pipeline.

The producer validates external rows and feeds a bounded queue, blocking when
it is full. A single consumer drains the queue in order, so no two
transactions are ever applied at the same time, even for different clients.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional
import asyncio
import csv

from pydantic import ValidationError
import structlog

from errors import PaymentsError, PipelineError, StorageError
from models import Account, Transaction, TransactionRow
from repositories import AccountRepository, LedgerRepository
from services import TransactionService

logger = structlog.get_logger()

_END_OF_STREAM = None


@dataclass
class PipelineStats:
    received: int = 0
    skipped: int = 0
    processed: int = 0
    failed: int = 0


class PaymentsPipeline:
    def __init__(
        self,
        service: TransactionService,
        account_repo: AccountRepository,
        ledger_repo: LedgerRepository,
        queue_capacity: int = 1024
    ):
        self.service = service
        self.account_repo = account_repo
        self.ledger_repo = ledger_repo
        self.queue_capacity = queue_capacity
        self.stats = PipelineStats()

    async def run(self, rows: Iterable[Mapping[Optional[str], Any]]) -> List[Account]:
        """Process every row and return the final accounts ordered by client id."""

        logger.info("Starting pipeline", queue_capacity=self.queue_capacity)

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_capacity)
        producer = asyncio.create_task(self._produce(rows, queue), name="producer")
        consumer = asyncio.create_task(self._consume(queue), name="consumer")

        _, pending = await asyncio.wait({producer, consumer}, return_when=asyncio.FIRST_EXCEPTION)

        # A crashed stage would leave its peer blocked on the queue forever
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in (producer, consumer):
            if task.cancelled():
                continue
            error = task.exception()
            if error is not None:
                logger.error(
                    "Pipeline stage failed",
                    stage=task.get_name(),
                    error=str(error),
                    exc_info=error
                )
                raise PipelineError(f"{task.get_name()} stage failed: {error}") from error

        accounts = await self.account_repo.drain()

        logger.info(
            "Pipeline completed",
            received=self.stats.received,
            skipped=self.stats.skipped,
            processed=self.stats.processed,
            failed=self.stats.failed,
            accounts_count=len(accounts),
            transactions_stored=await self.ledger_repo.get_transactions_count()
        )

        return accounts

    async def _produce(self, rows: Iterable[Mapping[Optional[str], Any]], queue: asyncio.Queue) -> None:
        row_iterator = iter(rows)
        row_number = 0
        while True:
            row_number += 1
            try:
                row = next(row_iterator)
            except StopIteration:
                break
            except csv.Error as e:
                # The reader drops the rest of the bad record and resumes on the next line
                self.stats.received += 1
                self.stats.skipped += 1
                logger.warning("Skipping unreadable row", row_number=row_number, error=str(e))
                continue

            self.stats.received += 1
            try:
                transaction = TransactionRow.from_csv(row).to_transaction()
            except (ValidationError, ArithmeticError) as e:
                self.stats.skipped += 1
                logger.warning(
                    "Skipping malformed row",
                    row_number=row_number,
                    row=dict(row),
                    error=str(e)
                )
                continue

            await queue.put(transaction)

        await queue.put(_END_OF_STREAM)

    async def _consume(self, queue: asyncio.Queue) -> None:
        while True:
            transaction = await queue.get()
            if transaction is _END_OF_STREAM:
                return
            await self._handle(transaction)

    async def _handle(self, transaction: Transaction) -> None:
        # Only deposits and withdrawals can be referenced by a later dispute
        if transaction.type.carries_amount:
            try:
                await self.ledger_repo.record(transaction)
            except StorageError as e:
                logger.error(
                    "Failed to record transaction",
                    transaction_id=transaction.id,
                    client_id=transaction.client,
                    error=str(e)
                )

        try:
            await self.service.process_transaction(transaction)
        except PaymentsError as e:
            self.stats.failed += 1
            logger.warning(
                "Transaction failed",
                transaction_id=transaction.id,
                client_id=transaction.client,
                type=transaction.type.value,
                error=str(e)
            )
            return

        self.stats.processed += 1
