import structlog

from errors import AccountLockedError, InsufficientFundsError, NotFoundError
from models import Account, Transaction, TransactionType
from repositories import AccountRepository, LedgerRepository

logger = structlog.get_logger()


class TransactionService:
    """
    Applies transactions to client accounts, one at a time.

    Dispute state is not tracked per transaction. Amounts held, released or
    charged back are re-derived from the referenced transaction and clamped to
    what the account currently has available or held, so a repeated resolve or
    chargeback has reduced or no effect instead of failing.
    """

    def __init__(self, account_repo: AccountRepository, ledger_repo: LedgerRepository):
        self.account_repo = account_repo
        self.ledger_repo = ledger_repo

    async def process_transaction(self, transaction: Transaction) -> Account:
        """Apply a transaction to its client's account and return the saved account."""

        account = await self.account_repo.get_or_create(transaction.client)

        if account.locked:
            logger.warning(
                "Transaction rejected, account locked",
                client_id=transaction.client,
                transaction_id=transaction.id,
                type=transaction.type.value
            )
            raise AccountLockedError(transaction.client)

        if transaction.type == TransactionType.deposit:
            self._process_deposit(account, transaction)
        elif transaction.type == TransactionType.withdrawal:
            self._process_withdrawal(account, transaction)
        else:
            referenced = await self._get_referenced(transaction)
            if referenced.amount is None:
                logger.info(
                    "Referenced transaction has no amount, nothing to apply",
                    client_id=transaction.client,
                    transaction_id=transaction.id
                )
            elif transaction.type == TransactionType.dispute:
                self._process_dispute(account, referenced)
            elif transaction.type == TransactionType.resolve:
                self._process_resolve(account, referenced)
            elif transaction.type == TransactionType.chargeback:
                self._process_chargeback(account, referenced)

        await self.account_repo.save(account)

        logger.debug(
            "Transaction applied",
            client_id=account.id,
            transaction_id=transaction.id,
            type=transaction.type.value,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked
        )

        return account

    async def _get_referenced(self, transaction: Transaction) -> Transaction:
        try:
            return await self.ledger_repo.get_transaction(transaction.id)
        except NotFoundError:
            logger.warning(
                "Referenced transaction not found",
                client_id=transaction.client,
                transaction_id=transaction.id,
                type=transaction.type.value
            )
            raise

    def _process_deposit(self, account: Account, transaction: Transaction) -> None:
        account.available += transaction.amount
        account.total += transaction.amount

    def _process_withdrawal(self, account: Account, transaction: Transaction) -> None:
        if transaction.amount > account.available:
            logger.warning(
                "Insufficient funds for withdrawal",
                client_id=account.id,
                transaction_id=transaction.id,
                available=account.available,
                requested_amount=transaction.amount
            )
            raise InsufficientFundsError(account.id, transaction.amount, account.available)

        account.available -= transaction.amount
        account.total -= transaction.amount

    def _process_dispute(self, account: Account, referenced: Transaction) -> None:
        # Withdrawn funds already left the account, nothing to hold back
        if referenced.type != TransactionType.deposit:
            return

        held_amount = min(referenced.amount, account.available)
        account.held += held_amount
        account.available -= held_amount

    def _process_resolve(self, account: Account, referenced: Transaction) -> None:
        if referenced.type != TransactionType.deposit:
            return

        released = min(referenced.amount, account.held)
        account.held -= released
        account.available += released

    def _process_chargeback(self, account: Account, referenced: Transaction) -> None:
        if referenced.type == TransactionType.deposit:
            taken = min(referenced.amount, account.held)
            account.held -= taken
            account.total -= taken
            account.locked = True
        elif referenced.type == TransactionType.withdrawal:
            # Reversed withdrawal; the account holder is the wronged party, so no lock
            account.available += referenced.amount
            account.total += referenced.amount


# Factory function for dependency injection
def get_transaction_service(
    account_repo: AccountRepository,
    ledger_repo: LedgerRepository
) -> TransactionService:
    return TransactionService(account_repo, ledger_repo)
