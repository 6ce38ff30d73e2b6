"""
Transfer Errors

Every failure the transfer core reports is one of these. The REST layer
maps them to status codes; nothing else in the core raises bare
OSError or ValueError to its callers.
"""


class TransferError(Exception):
    """Base class for transfer failures."""


class InvalidArgument(TransferError, ValueError):
    """Malformed or missing input. No state was changed."""


class OffsetConflict(InvalidArgument):
    """
    Chunk offset lies beyond the durable size and the gap was never filled.
    
    Clients should ask for the current offset and resume from there.
    """


class NotFound(TransferError, LookupError):
    """No transfer exists under the given id."""


class TransferFinalized(TransferError):
    """The transfer was already promoted to its final artifact."""


class StorageUnavailable(TransferError, OSError):
    """
    The backing directory could not be read or written.
    
    Partial state is possible; the current offset is the source of truth
    for where to resume.
    """
