class PaymentsError(Exception):
    """Base exception for all payments engine errors."""
    pass


class InvalidArgumentsError(PaymentsError):
    """Raised when the engine is invoked with malformed arguments."""
    pass


class InputError(PaymentsError):
    """Raised when the transaction input cannot be opened or read."""
    pass


class StorageError(PaymentsError):
    """Raised when a store backend fails to read or write a value."""
    pass


class NotFoundError(PaymentsError):
    """Raised when a key is missing from a store."""

    def __init__(self, key):
        super().__init__(f"key {key} not found")
        self.key = key


class InsufficientFundsError(PaymentsError):
    """Raised when a withdrawal exceeds the available balance."""

    def __init__(self, client_id: int, requested: int, available: int):
        super().__init__(
            f"insufficient funds for client {client_id}: "
            f"requested {requested}, available {available}"
        )
        self.client_id = client_id
        self.requested = requested
        self.available = available


class AccountLockedError(PaymentsError):
    """Raised when a transaction targets a locked account."""

    def __init__(self, client_id: int):
        super().__init__(f"account {client_id} is locked")
        self.client_id = client_id


class PipelineError(PaymentsError):
    """Raised when a pipeline stage terminates with an unexpected error."""
    pass
