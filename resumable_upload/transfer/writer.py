"""
Chunk Writer

Design Decision: Chunk Positioning
===================================

Options Considered:
1. Seek anywhere, let the filesystem fill holes with zeros
   - Out-of-order chunks just work
   - A chunk that never arrives leaves zeros in the final file,
     and the size already says "complete"

2. Reject anything that doesn't start at the current size
   - No holes, ever
   - Two chunks sent in parallel fail whenever the later one
     is scheduled first

3. Accept offsets up to the current size; let chunks that start
   beyond it wait for the gap to be filled
   - Retries of an acknowledged range overwrite it with the same bytes
   - Parallel chunks land in offset order, whichever arrives first
   - A gap nobody fills is rejected after a timeout, nothing written

Decision: Option 3
- Bytes past the declared length are dropped, so the data file never
  grows beyond what the client announced
- A short stream (client went away) keeps whatever was written; the
  next offset query tells the client where to resume

Write Flow:
1. Validate offset and declared length (no lock needed)
2. Take the transfer's lock
3. Wait for the gap in front of the chunk, if any
4. Seek, stream bytes to disk, flush and fsync
5. If the data now covers the declared length, finalize
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Optional, Tuple, Union

from .errors import (
    InvalidArgument, OffsetConflict, StorageUnavailable, TransferFinalized,
)
from .lifecycle import TransferLifecycle
from .locks import TransferLocks
from .metadata import TransferMetadata, parse_length
from .store import TransferStore

logger = logging.getLogger(__name__)

ChunkBody = Union[bytes, bytearray, memoryview, AsyncIterable[bytes]]


@dataclass
class ChunkResult:
    """Outcome of one chunk write."""
    transfer_id: str
    offset: int
    bytes_written: int
    declared_length: int
    received_length: int  # Data file size after the write
    final_path: Optional[Path] = None
    interrupted: bool = False

    @property
    def new_offset(self) -> int:
        return self.offset + self.bytes_written

    @property
    def is_complete(self) -> bool:
        return self.received_length >= self.declared_length

    @property
    def is_finalized(self) -> bool:
        return self.final_path is not None


async def _single_piece(data: bytes) -> AsyncIterator[bytes]:
    yield bytes(data)


class ChunkWriter:
    """
    Applies byte ranges to a transfer's data file.

    All writes to one transfer are serialized through its lock; writes
    to different transfers run independently.
    """

    def __init__(self, store: TransferStore, locks: TransferLocks,
                 lifecycle: TransferLifecycle, gap_timeout: float = 5.0,
                 fsync: bool = True):
        self.store = store
        self.locks = locks
        self.lifecycle = lifecycle
        self.gap_timeout = gap_timeout
        self.fsync = fsync

    async def apply_chunk(self, transfer_id: str,
                          offset: Union[int, str, None],
                          body: ChunkBody,
                          total_length: Union[int, str, None] = None,
                          file_name: Optional[str] = None) -> ChunkResult:
        """
        Write a chunk at offset and finalize the transfer if it is complete.

        Args:
            transfer_id: Transfer to write to
            offset: Byte position the chunk starts at
            body: Chunk bytes, or an async iterable of byte pieces
            total_length: Declared length as the client sent it (optional)
            file_name: Name for the finalized file

        Returns:
            ChunkResult with the new offset

        Raises:
            NotFound: unknown transfer
            InvalidArgument: malformed offset or length
            OffsetConflict: the chunk starts past a gap that was never filled
            TransferFinalized: the transfer was already finalized
            StorageUnavailable: the data file could not be written
        """
        offset = parse_length(offset, 'Upload-Offset')
        if total_length is not None:
            total_length = parse_length(total_length, 'Upload-Length')

        if isinstance(body, (bytes, bytearray, memoryview)):
            body = _single_piece(body)

        # Fail fast for unknown ids before creating a lock entry
        await self.store.read_metadata(transfer_id)

        async with self.locks.hold(transfer_id) as condition:
            metadata = await self._check_writable(transfer_id, offset, total_length)
            size = await self.store.data_size(transfer_id)

            if offset > size:
                logger.debug(
                    f"Transfer {transfer_id}: chunk at {offset} waiting for "
                    f"bytes {size}-{offset}"
                )

                async def gap_filled() -> bool:
                    # A finalized transfer will never fill it; stop waiting
                    if (await self.lifecycle.load(transfer_id)).is_finalized:
                        return True
                    return await self.store.data_size(transfer_id) >= offset

                if not await self.locks.wait_until(condition, gap_filled, self.gap_timeout):
                    size = await self.store.data_size(transfer_id)
                    logger.warning(
                        f"Transfer {transfer_id}: rejected chunk at {offset}, "
                        f"only {size} bytes received"
                    )
                    raise OffsetConflict(
                        f"Upload-Offset {offset} is beyond current offset {size}"
                    )

                # Another writer may have completed it meanwhile
                metadata = await self._check_writable(transfer_id, offset, total_length)
                size = await self.store.data_size(transfer_id)

            limit = metadata.declared_length - offset
            written, interrupted = await self._write(transfer_id, offset, body, limit)

            result = ChunkResult(
                transfer_id=transfer_id,
                offset=offset,
                bytes_written=written,
                declared_length=metadata.declared_length,
                received_length=max(size, offset + written),
                interrupted=interrupted,
            )

            logger.info(
                f"Transfer {transfer_id}: wrote {written} bytes at offset {offset} "
                f"(new offset: {result.new_offset}/{metadata.declared_length})"
            )

            if result.is_complete:
                result.final_path = await self.lifecycle.finalize(
                    transfer_id, metadata, file_name
                )

        return result

    async def _check_writable(self, transfer_id: str, offset: int,
                              total_length: Optional[int]) -> TransferMetadata:
        metadata = await self.lifecycle.load(transfer_id)

        if metadata.is_finalized:
            raise TransferFinalized(
                f"Transfer {transfer_id} was already saved as {metadata.final_name}"
            )

        if total_length is not None and total_length != metadata.declared_length:
            raise InvalidArgument(
                f"Upload-Length {total_length} does not match declared "
                f"length {metadata.declared_length}"
            )

        if offset > metadata.declared_length:
            raise InvalidArgument(
                f"Upload-Offset {offset} is beyond declared length "
                f"{metadata.declared_length}"
            )

        return metadata

    async def _write(self, transfer_id: str, offset: int,
                     body: AsyncIterable[bytes], limit: int) -> Tuple[int, bool]:
        """
        Stream body into the data file at offset, writing at most limit bytes.

        The whole body is consumed; bytes past the limit are dropped.

        Returns:
            (bytes written, whether the stream was cut short)
        """
        written = 0
        dropped = 0
        interrupted = False

        try:
            async with self.store.open_data(transfer_id) as f:
                await f.seek(offset)

                try:
                    async for piece in body:
                        room = limit - written
                        if len(piece) > room:
                            dropped += len(piece) - room
                            piece = piece[:room]
                        if piece:
                            await f.write(piece)
                            written += len(piece)
                except ConnectionError as e:
                    interrupted = True
                    logger.warning(
                        f"Transfer {transfer_id}: stream interrupted after "
                        f"{written} bytes: {e}"
                    )

                if self.fsync:
                    await self.store.sync(f)
                else:
                    await f.flush()
        except StorageUnavailable:
            raise
        except OSError as e:
            logger.error(f"Error writing chunk for transfer {transfer_id}: {e}")
            raise StorageUnavailable(
                f"Failed to write chunk for {transfer_id}: {e}"
            ) from e

        if dropped:
            logger.warning(
                f"Transfer {transfer_id}: dropped {dropped} bytes past the "
                f"declared length"
            )

        return written, interrupted
