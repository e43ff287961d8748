"""Error kinds shared by the store, the sync adapter and the HTTP layer. None of them is fatal."""
from __future__ import annotations


class RolldayError(Exception):
    """Base class for all application errors."""


class ValidationError(RolldayError, ValueError):
    """Task text/date/repeat rejected on add or edit. The store is left untouched."""


class NotFoundError(RolldayError, LookupError):
    """A task or history id no longer exists. Mutations treat this as a silent no-op."""


class SyncError(RolldayError, RuntimeError):
    """The storage backend failed to load or persist. Surfaced as a status flag, never rolled back."""
