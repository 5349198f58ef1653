"""Exceptions raised by the persistence layer."""


class PersistenceError(Exception):
    """Base class for all persistence failures."""

    pass


class ConnectivityError(PersistenceError):
    """Raised when the document store cannot be reached."""

    pass


class StorageError(PersistenceError):
    """Raised when a storage operation fails after a connection was made."""

    pass


class SerializationError(PersistenceError):
    """Raised when a value cannot be encoded or a stored tag is not recognized.

    Attributes:
        tag: The unrecognized ``valType`` tag, or None for any other failure.
    """

    def __init__(self, message: str, tag: str | None = None) -> None:
        super().__init__(message)
        self.tag = tag
