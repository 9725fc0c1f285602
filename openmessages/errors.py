"""
Exception types raised by the store and the ingestion paths.

"Not found" is never an exception: single-entity lookups return ``None``.
"""


class OpenMessagesError(Exception):
    """Base class for all openmessages errors."""


class StorageError(OpenMessagesError):
    """The database engine or the disk failed while serving a store call."""


class BackfillError(OpenMessagesError):
    """The initial conversation listing failed, so no backfill took place."""
