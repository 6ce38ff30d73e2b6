"""
Transfer Store

Design Decision: Storage Strategy
==================================

Options Considered:
1. In-memory table of transfer objects, flushed periodically
   - Fast offset queries
   - Lost or stale after a crash

2. SQLite rows for metadata, files for data
   - Two sources of truth that must agree

3. One directory per transfer on the filesystem
   - Everything re-derived from disk on every call
   - Survives restarts without a recovery step
   - Easy to inspect manually

Decision: One directory per transfer
- The received length is the size of the data file, nothing else
- Metadata is written atomically (write to temp, then rename)
- Finalized files are moved into a separate directory

Storage Layout:
```
upload_dir/
├── <transfer_id>/
│   ├── metadata.json    # Declared length, client metadata, final name
│   └── data             # Bytes received so far
└── files/               # Finalized uploads, by name
    └── <name>
```
"""

import asyncio
import errno
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os

from .errors import NotFound, StorageUnavailable
from .ids import is_valid_transfer_id
from .metadata import TransferMetadata

logger = logging.getLogger(__name__)

METADATA_FILE = 'metadata.json'
DATA_FILE = 'data'


@dataclass
class StoreStats:
    """Statistics about stored transfers."""
    transfer_count: int
    pending_bytes: int
    artifact_count: int


class TransferStore:
    """
    Filesystem-backed storage for transfers and finalized files.

    Provides:
    - Per-transfer namespace creation and removal
    - Metadata record read/write
    - Range writes into the data file
    - Size queries on the data file
    - Atomic promotion of the data file to the files directory
    """

    def __init__(self, upload_dir: Path, files_dir: Optional[Path] = None):
        """
        Initialize transfer storage.

        Args:
            upload_dir: Root directory holding one subdirectory per transfer
            files_dir: Directory for finalized files (defaults to upload_dir/files)
        """
        self.upload_dir = Path(upload_dir)
        self.files_dir = Path(files_dir) if files_dir else self.upload_dir / "files"

        self._ensure_directories()

    def _ensure_directories(self):
        """Create storage directories if they don't exist."""
        for dir_path in [self.upload_dir, self.files_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def transfer_dir(self, transfer_id: str) -> Path:
        """Get the directory for a transfer, refusing ids that could escape it."""
        if not is_valid_transfer_id(transfer_id):
            raise NotFound(f"Transfer not found: {transfer_id!r}")
        return self.upload_dir / transfer_id

    def data_path(self, transfer_id: str) -> Path:
        return self.transfer_dir(transfer_id) / DATA_FILE

    def metadata_path(self, transfer_id: str) -> Path:
        return self.transfer_dir(transfer_id) / METADATA_FILE

    def artifact_path(self, name: str) -> Path:
        """Get the final location for a file name (already sanitized)."""
        return self.files_dir / name

    # === Namespace Operations ===

    async def create_namespace(self, transfer_id: str) -> Path:
        """
        Create the directory for a new transfer.

        Raises:
            FileExistsError: if the id is already taken
            StorageUnavailable: on any other filesystem error
        """
        path = self.transfer_dir(transfer_id)
        try:
            await aiofiles.os.mkdir(path)
        except FileExistsError:
            raise
        except OSError as e:
            raise StorageUnavailable(f"Cannot create {path}: {e}") from e
        return path

    async def remove_namespace(self, transfer_id: str):
        """Remove a transfer directory and everything in it."""
        path = self.transfer_dir(transfer_id)
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageUnavailable(f"Cannot remove {path}: {e}") from e

    async def list_transfer_ids(self) -> List[str]:
        """List ids of all transfer directories."""
        try:
            names = await aiofiles.os.listdir(self.upload_dir)
        except OSError as e:
            raise StorageUnavailable(f"Cannot list {self.upload_dir}: {e}") from e

        return sorted(
            name for name in names
            if is_valid_transfer_id(name) and (self.upload_dir / name).is_dir()
        )

    # === Metadata Operations ===

    async def write_metadata(self, transfer_id: str, metadata: TransferMetadata):
        """Write the metadata record atomically (write to temp, then rename)."""
        path = self.metadata_path(transfer_id)
        temp_path = path.with_suffix('.tmp')

        try:
            async with aiofiles.open(temp_path, 'w') as f:
                await f.write(metadata.to_json(indent=2))
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot write metadata for {transfer_id}: {e}") from e

    async def read_metadata(self, transfer_id: str) -> TransferMetadata:
        """
        Read the metadata record of a transfer.

        A directory without a readable record is not a transfer.

        Raises:
            NotFound: unknown id, or no usable record
            StorageUnavailable: the record exists but cannot be read
        """
        path = self.metadata_path(transfer_id)

        try:
            async with aiofiles.open(path, 'r') as f:
                data = await f.read()
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound(f"Transfer not found: {transfer_id}")
        except OSError as e:
            raise StorageUnavailable(f"Cannot read metadata for {transfer_id}: {e}") from e

        try:
            return TransferMetadata.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring transfer {transfer_id} with corrupt metadata: {e}")
            raise NotFound(f"Transfer not found: {transfer_id}")

    # === Data Operations ===

    async def data_size(self, transfer_id: str) -> int:
        """Size of the data file, 0 if nothing was written yet."""
        path = self.data_path(transfer_id)
        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise StorageUnavailable(f"Cannot stat data for {transfer_id}: {e}") from e
        return stat.st_size

    async def has_data(self, transfer_id: str) -> bool:
        """Whether the data file exists (it is moved away on promotion)."""
        return await aiofiles.os.path.exists(self.data_path(transfer_id))

    async def has_artifact(self, name: str) -> bool:
        return await aiofiles.os.path.exists(self.artifact_path(name))

    def open_data(self, transfer_id: str):
        """
        Open the data file for range writes, creating it if needed.

        Never truncates. Use as ``async with store.open_data(id) as f``.
        """
        path = self.data_path(transfer_id)
        return aiofiles.open(
            path, 'r+b',
            opener=lambda p, flags: os.open(p, os.O_RDWR | os.O_CREAT, 0o644),
        )

    @staticmethod
    async def sync(f):
        """Flush a file opened by open_data() all the way to disk."""
        await f.flush()
        await asyncio.to_thread(os.fsync, f.fileno())

    # === Promotion ===

    async def promote(self, transfer_id: str, name: str) -> Path:
        """
        Move the data file to files_dir/name.

        Observers either see no file at the target, or the complete file.
        When the two directories are on different filesystems the data is
        copied to a temp file next to the target, then renamed into place.

        Returns:
            Path of the finalized file
        """
        source = self.data_path(transfer_id)
        target = self.artifact_path(name)

        try:
            await aiofiles.os.replace(source, target)
            return target
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise StorageUnavailable(
                    f"Cannot move {source} to {target}: {e}"
                ) from e

        logger.debug(f"{source} and {target} are on different devices, copying")
        temp_path = self.files_dir / f".{name}.{transfer_id}.tmp"

        try:
            await asyncio.to_thread(shutil.copyfile, source, temp_path)
            await aiofiles.os.replace(temp_path, target)
            await aiofiles.os.remove(source)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageUnavailable(f"Cannot copy {source} to {target}: {e}") from e

        return target

    # === Statistics ===

    async def get_stats(self) -> StoreStats:
        """Get storage statistics."""
        transfer_ids = await self.list_transfer_ids()

        pending_bytes = 0
        for transfer_id in transfer_ids:
            pending_bytes += await self.data_size(transfer_id)

        artifact_count = sum(
            1 for p in self.files_dir.iterdir()
            if p.is_file() and not p.name.endswith('.tmp')
        )

        return StoreStats(
            transfer_count=len(transfer_ids),
            pending_bytes=pending_bytes,
            artifact_count=artifact_count,
        )
