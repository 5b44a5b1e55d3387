"""
Error taxonomy for the quick-entry core.

None of these are allowed to escape an async entry point of the core: they
are raised by collaborators and storage adapters, then caught at the
nearest boundary and converted to a sentinel (None / False) or to a
user-facing message.
"""


class QuickEntryError(Exception):
    """Base class for quick-entry failures."""


class InputRejected(QuickEntryError):
    """Arithmetic evaluation produced a non-finite result."""


class ValidationFailed(QuickEntryError, ValueError):
    """Commit attempted with a non-finite amount or without an account."""


class RemoteCallFailed(QuickEntryError):
    """A create / list / lookup RPC failed."""


class RemoteUnavailable(RemoteCallFailed):
    """The backend could not be reached at all (connection or timeout)."""


class StorageDegraded(QuickEntryError):
    """The durable queue store cannot be opened or recreated."""


class QueueFull(QuickEntryError):
    """The offline queue is at capacity; the new mutation was not stored."""
