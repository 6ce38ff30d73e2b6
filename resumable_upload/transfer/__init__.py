"""
Transfer Module - Resumable Chunked Uploads

Transfer state lives entirely on disk: creation, chunk writes, offset
queries and finalization all re-derive what they need from the
transfer's directory.
"""

from .errors import (
    TransferError, InvalidArgument, OffsetConflict, NotFound,
    TransferFinalized, StorageUnavailable,
)
from .ids import generate_transfer_id, is_valid_transfer_id
from .metadata import TransferMetadata, parse_length
from .store import TransferStore, StoreStats
from .locks import TransferLocks
from .offsets import OffsetResolver
from .lifecycle import TransferLifecycle, DEFAULT_FILE_NAME
from .writer import ChunkWriter, ChunkResult

__all__ = [
    'TransferError',
    'InvalidArgument',
    'OffsetConflict',
    'NotFound',
    'TransferFinalized',
    'StorageUnavailable',
    'generate_transfer_id',
    'is_valid_transfer_id',
    'TransferMetadata',
    'parse_length',
    'TransferStore',
    'StoreStats',
    'TransferLocks',
    'OffsetResolver',
    'TransferLifecycle',
    'DEFAULT_FILE_NAME',
    'ChunkWriter',
    'ChunkResult',
]
