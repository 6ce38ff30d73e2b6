"""
Transfer Lifecycle

Creation allocates an id, a directory and a metadata record.
Finalization moves the completed data file into the files directory
under its declared name and marks the record, so the transfer stops
accepting chunks.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import StorageUnavailable
from .ids import generate_transfer_id
from .metadata import TransferMetadata, parse_length
from .store import TransferStore

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = 'uploaded_file'

# Attempts at finding an unused id before giving up
MAX_ID_ATTEMPTS = 5


class TransferLifecycle:
    """
    Creates and finalizes transfers.

    Finalization methods expect the caller to hold the transfer's lock.
    """

    def __init__(self, store: TransferStore,
                 default_name: str = DEFAULT_FILE_NAME,
                 id_factory: Callable[[], str] = generate_transfer_id):
        self.store = store
        self.default_name = default_name
        self.id_factory = id_factory

    async def create(self, declared_length: Union[int, str, None],
                     client_metadata: Optional[str] = None) -> str:
        """
        Create a new transfer.

        Args:
            declared_length: Total bytes the client will send
            client_metadata: Opaque string stored with the transfer

        Returns:
            The new transfer id

        Raises:
            InvalidArgument: declared_length missing or malformed
            StorageUnavailable: the transfer could not be stored
        """
        length = parse_length(declared_length, 'Upload-Length')

        for _ in range(MAX_ID_ATTEMPTS):
            transfer_id = self.id_factory()
            try:
                await self.store.create_namespace(transfer_id)
                break
            except FileExistsError:
                logger.warning(f"Transfer id collision on {transfer_id}, retrying")
        else:
            raise StorageUnavailable("Could not allocate an unused transfer id")

        metadata = TransferMetadata(
            declared_length=length,
            client_metadata=client_metadata or "",
        )

        try:
            await self.store.write_metadata(transfer_id, metadata)
        except StorageUnavailable:
            # Leave nothing addressable behind
            try:
                await self.store.remove_namespace(transfer_id)
            except StorageUnavailable as e:
                logger.error(f"Could not clean up transfer {transfer_id}: {e}")
            raise

        logger.info(f"Created transfer {transfer_id} with length {length} bytes")
        return transfer_id

    def final_name(self, requested: Optional[str]) -> str:
        """
        Reduce a client-supplied name to a safe file name.

        Only the last path component is kept; anything unusable falls
        back to the default name.
        """
        name = (requested or "").strip().replace('\\', '/').rsplit('/', 1)[-1]

        if name in ('', '.', '..') or '\x00' in name:
            if requested:
                logger.warning(f"Unusable file name {requested!r}, using {self.default_name}")
            return self.default_name

        return name

    async def load(self, transfer_id: str) -> TransferMetadata:
        """
        Read a transfer's metadata, completing an interrupted promotion.

        A recorded final_name with the data file gone and the file present
        in files_dir means the move succeeded but the finalized marker was
        never written. The marker is written now; if that fails again the
        record is still reported as finalized.

        Raises:
            NotFound: unknown transfer
            StorageUnavailable: the record cannot be read
        """
        metadata = await self.store.read_metadata(transfer_id)
        if not metadata.is_promoting:
            return metadata

        if await self.store.has_data(transfer_id):
            return metadata  # Move never happened
        if not await self.store.has_artifact(metadata.final_name):
            return metadata

        logger.warning(
            f"Transfer {transfer_id} was saved as {metadata.final_name} "
            f"but never marked finalized, repairing"
        )
        metadata.mark_finalized(metadata.final_name)
        try:
            await self.store.write_metadata(transfer_id, metadata)
        except StorageUnavailable as e:
            logger.error(f"Could not mark transfer {transfer_id} finalized: {e}")
        return metadata

    async def promote(self, transfer_id: str, metadata: TransferMetadata,
                      requested_name: Optional[str]) -> Path:
        """
        Move the data file to its final location and mark the transfer.

        The name is recorded before the move so that a lost marker write
        can be detected afterwards (see load()).

        Raises:
            StorageUnavailable: the move or a metadata write failed
        """
        name = self.final_name(requested_name)

        metadata.final_name = name
        await self.store.write_metadata(transfer_id, metadata)

        path = await self.store.promote(transfer_id, name)

        metadata.mark_finalized(name)
        try:
            await self.store.write_metadata(transfer_id, metadata)
        except StorageUnavailable as e:
            # Data is in place; load() repairs the marker on the next read
            logger.error(f"Transfer {transfer_id} saved as {name}, marker not written: {e}")

        logger.info(f"Transfer {transfer_id} complete: saved as {name}")
        return path

    async def finalize(self, transfer_id: str, metadata: TransferMetadata,
                       requested_name: Optional[str]) -> Optional[Path]:
        """
        Promote a completed transfer, reporting rather than raising failures.

        The chunk that completed the transfer was written either way; on
        failure the data stays where it is and promotion can be retried.

        Returns:
            Path of the finalized file, or None if promotion failed
        """
        try:
            return await self.promote(transfer_id, metadata, requested_name)
        except StorageUnavailable as e:
            logger.error(f"Error moving transfer {transfer_id} to final location: {e}")
            return None
