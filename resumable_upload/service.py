"""
Transfer Service - Main Controller

This is the entry point the HTTP layer and the CLI talk to. It wires
the transfer components together from a Config:
- TransferStore for everything on disk
- TransferLocks to serialize work on one transfer
- TransferLifecycle for creation and finalization
- ChunkWriter and OffsetResolver for the upload protocol itself
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .config import Config
from .transfer import (
    ChunkWriter, InvalidArgument, NotFound, OffsetResolver,
    TransferFinalized, TransferLifecycle, TransferLocks, TransferStore,
)
from .transfer.writer import ChunkBody

logger = logging.getLogger(__name__)


@dataclass
class TransferInfo:
    """Snapshot of a transfer, as read from disk."""
    transfer_id: str
    declared_length: int
    offset: int
    client_metadata: str
    created_at: float
    final_name: Optional[str] = None
    finalized_at: Optional[float] = None

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    @property
    def is_complete(self) -> bool:
        return self.offset >= self.declared_length

    @property
    def progress_percent(self) -> float:
        if self.declared_length == 0:
            return 100.0
        return min(self.offset / self.declared_length, 1.0) * 100

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'transfer_id': self.transfer_id,
            'declared_length': self.declared_length,
            'offset': self.offset,
            'client_metadata': self.client_metadata,
            'created_at': self.created_at,
            'final_name': self.final_name,
            'finalized_at': self.finalized_at,
            'is_complete': self.is_complete,
            'is_finalized': self.is_finalized,
        }


class TransferService:
    """
    Resumable upload service.

    Exposes the three protocol operations:
    - create_transfer(length, metadata): announce an upload
    - apply_chunk(id, offset, body): send a byte range
    - current_offset(id): ask where to resume

    Plus inspection and recovery helpers for operators.
    """

    def __init__(self, config: Config = None):
        """
        Initialize the service.

        Args:
            config: Service configuration (uses defaults if not provided)
        """
        self.config = config or Config()

        # Initialize components
        self.store = TransferStore(
            self.config.upload_dir,
            self.config.resolved_files_dir,
        )
        self.locks = TransferLocks()
        self.lifecycle = TransferLifecycle(
            self.store,
            default_name=self.config.default_name,
        )
        self.offsets = OffsetResolver(self.store, self.locks, self.lifecycle)
        self.writer = ChunkWriter(
            self.store,
            self.locks,
            self.lifecycle,
            gap_timeout=self.config.gap_timeout,
            fsync=self.config.fsync,
        )

        # Statistics (informational only, never used for offsets)
        self.transfers_created = 0
        self.chunks_applied = 0
        self.bytes_received = 0
        self.transfers_finalized = 0

    # === Protocol Operations ===

    async def create_transfer(self, declared_length: Union[int, str, None],
                              client_metadata: Optional[str] = None) -> str:
        """Create a transfer and return its id."""
        transfer_id = await self.lifecycle.create(declared_length, client_metadata)
        self.transfers_created += 1
        return transfer_id

    async def apply_chunk(self, transfer_id: str,
                          offset: Union[int, str, None],
                          body: ChunkBody,
                          total_length: Union[int, str, None] = None,
                          file_name: Optional[str] = None) -> int:
        """Write a chunk and return the new offset."""
        result = await self.writer.apply_chunk(
            transfer_id, offset, body,
            total_length=total_length,
            file_name=file_name,
        )

        self.chunks_applied += 1
        self.bytes_received += result.bytes_written
        if result.is_finalized:
            self.transfers_finalized += 1

        return result.new_offset

    async def current_offset(self, transfer_id: str) -> int:
        """Get the durable offset to resume a transfer from."""
        return await self.offsets.current_offset(transfer_id)

    # === Inspection ===

    async def get_transfer_info(self, transfer_id: str) -> TransferInfo:
        """Describe a single transfer."""
        offset = await self.offsets.current_offset(transfer_id)
        metadata = await self.lifecycle.load(transfer_id)

        return TransferInfo(
            transfer_id=transfer_id,
            declared_length=metadata.declared_length,
            offset=offset,
            client_metadata=metadata.client_metadata,
            created_at=metadata.created_at,
            final_name=metadata.final_name,
            finalized_at=metadata.finalized_at,
        )

    async def list_transfers(self) -> List[TransferInfo]:
        """Describe every transfer in the upload directory, oldest first."""
        transfers = []

        for transfer_id in await self.store.list_transfer_ids():
            try:
                transfers.append(await self.get_transfer_info(transfer_id))
            except NotFound:
                continue  # Directory without a usable record

        transfers.sort(key=lambda t: t.created_at)
        return transfers

    # === Recovery ===

    async def finalize(self, transfer_id: str,
                       file_name: Optional[str] = None) -> Path:
        """
        Retry promotion of a complete transfer whose finalization failed.

        Raises:
            NotFound: unknown transfer
            TransferFinalized: already finalized
            InvalidArgument: not all bytes have been received
            StorageUnavailable: the move failed again
        """
        async with self.locks.hold(transfer_id):
            metadata = await self.lifecycle.load(transfer_id)

            if metadata.is_finalized:
                raise TransferFinalized(
                    f"Transfer {transfer_id} was already saved as {metadata.final_name}"
                )

            size = await self.store.data_size(transfer_id)
            if size < metadata.declared_length:
                raise InvalidArgument(
                    f"Transfer {transfer_id} is incomplete: "
                    f"{size}/{metadata.declared_length} bytes"
                )

            path = await self.lifecycle.promote(transfer_id, metadata, file_name)

        self.transfers_finalized += 1
        return path

    # === Statistics ===

    async def get_stats(self) -> dict:
        """Get service statistics."""
        store_stats = await self.store.get_stats()

        return {
            'upload_dir': str(self.store.upload_dir),
            'files_dir': str(self.store.files_dir),
            'transfers_created': self.transfers_created,
            'chunks_applied': self.chunks_applied,
            'bytes_received': self.bytes_received,
            'transfers_finalized': self.transfers_finalized,
            'active_locks': len(self.locks),
            'stored_transfers': store_stats.transfer_count,
            'pending_bytes': store_stats.pending_bytes,
            'finalized_files': store_stats.artifact_count,
        }
