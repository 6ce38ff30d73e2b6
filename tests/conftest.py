"""Shared test fixtures for the upload server."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from resumable_upload.api import create_app
from resumable_upload.config import Config
from resumable_upload.service import TransferService
from resumable_upload.transfer import (
    ChunkWriter, TransferLifecycle, TransferLocks, TransferStore,
)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Provide a Config rooted in a temp directory."""
    return Config(
        upload_dir=tmp_path / "uploads",
        gap_timeout=2.0,
    )


@pytest.fixture
def store(config: Config) -> TransferStore:
    """Provide a fresh TransferStore."""
    return TransferStore(config.upload_dir, config.resolved_files_dir)


@pytest.fixture
def locks() -> TransferLocks:
    return TransferLocks()


@pytest.fixture
def lifecycle(store: TransferStore) -> TransferLifecycle:
    """Provide a TransferLifecycle over the test store."""
    return TransferLifecycle(store)


@pytest.fixture
def impatient_writer(store: TransferStore, locks: TransferLocks,
                     lifecycle: TransferLifecycle) -> ChunkWriter:
    """Provide a ChunkWriter that gives up on gaps almost immediately."""
    return ChunkWriter(store, locks, lifecycle, gap_timeout=0.05)


@pytest.fixture
def service(config: Config) -> TransferService:
    """Provide a TransferService wired to the test config."""
    return TransferService(config)


@pytest.fixture
def client(service: TransferService):
    """Provide a TestClient for the REST API."""
    with TestClient(create_app(service)) as test_client:
        yield test_client
