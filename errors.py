"""Error kinds raised by the gateway and the recurring materializer."""


class TrackerError(Exception):
    """Base class for errors surfaced to callers."""


class InvalidTransaction(TrackerError, ValueError):
    """Request failed validation (bad category, missing field, ...)."""


class InvalidFrequency(InvalidTransaction):
    def __init__(self, frequency):
        super().__init__(f"Invalid frequency type: {frequency!r}")
        self.frequency = frequency


class TransactionNotFound(TrackerError, LookupError):
    def __init__(self, transaction_id):
        super().__init__("Transaction not found")
        self.transaction_id = transaction_id


class StoreUnavailable(TrackerError):
    """The database rejected or could not serve the request."""
