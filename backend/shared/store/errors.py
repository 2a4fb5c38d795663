"""Exceptions raised by document store implementations."""


class StoreError(Exception):
    """Base exception for document store failures."""


class DocumentNotFoundError(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"document not found: {path}")


class TransactionAbortedError(StoreError):
    """A transaction kept conflicting with concurrent writers and gave up."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"transaction aborted after {attempts} conflicting attempts")


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or timed out."""
