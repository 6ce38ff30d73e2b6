"""
Offset Resolver

Answers "where should the client resume?" from what is on disk. There
is no counter to consult: the offset is the size of the data file, or
the declared length once the transfer has been finalized.
"""

import logging

from .lifecycle import TransferLifecycle
from .locks import TransferLocks
from .store import TransferStore

logger = logging.getLogger(__name__)


class OffsetResolver:
    """Reads the durable offset of a transfer."""

    def __init__(self, store: TransferStore, locks: TransferLocks,
                 lifecycle: TransferLifecycle):
        self.store = store
        self.locks = locks
        self.lifecycle = lifecycle

    async def current_offset(self, transfer_id: str) -> int:
        """
        Get the number of bytes durably received for a transfer.

        Waits for an in-flight chunk write to finish so the answer never
        reflects half of one.

        Raises:
            NotFound: unknown transfer
            StorageUnavailable: the data file cannot be inspected
        """
        metadata = await self.store.read_metadata(transfer_id)

        async with self.locks.hold(transfer_id):
            # Re-read: the write we waited for may have finalized it
            metadata = await self.lifecycle.load(transfer_id)
            if metadata.is_finalized:
                offset = metadata.declared_length
            else:
                offset = await self.store.data_size(transfer_id)

        logger.debug(f"Transfer {transfer_id}: current offset is {offset}")
        return offset
