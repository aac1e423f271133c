from __future__ import annotations


class TransportError(RuntimeError):
    """The streaming call failed to open or dropped while being read."""


class PersistenceError(RuntimeError):
    """A history or favorite record could not be written."""


class StorageError(LookupError):
    """Raised by the in-memory store when a referenced record does not exist."""
