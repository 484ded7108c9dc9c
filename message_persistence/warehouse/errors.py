"""
Storage-layer exceptions.
"""


class StorageError(RuntimeError):
    """
    A connection or transaction failure in a store.

    The transaction has been rolled back when this is raised. Retry and
    dead-letter policy belong to the caller.
    """

    def __init__(self, store: str, operation: str, message: str):
        self.store = store
        self.operation = operation
        self.message = message
        super().__init__(f"[{store}:{operation}] {message}")
