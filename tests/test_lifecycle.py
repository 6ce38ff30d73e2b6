"""Tests for TransferLifecycle - creation, naming, promotion."""

import pytest

from resumable_upload.transfer import (
    InvalidArgument, StorageUnavailable, TransferLifecycle, is_valid_transfer_id,
)


class TestCreate:
    async def test_create_returns_usable_id(self, lifecycle, store):
        transfer_id = await lifecycle.create(10, "filename dGVzdA==")

        assert is_valid_transfer_id(transfer_id)
        metadata = await store.read_metadata(transfer_id)
        assert metadata.declared_length == 10
        assert metadata.client_metadata == "filename dGVzdA=="
        assert await store.data_size(transfer_id) == 0

    async def test_create_accepts_header_string(self, lifecycle, store):
        transfer_id = await lifecycle.create("2048")
        metadata = await store.read_metadata(transfer_id)
        assert metadata.declared_length == 2048
        assert metadata.client_metadata == ""

    async def test_ids_are_unique(self, lifecycle):
        ids = {await lifecycle.create(1) for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize("length", [None, "", "ten", "-5", "9" * 5000])
    async def test_invalid_length_creates_nothing(self, lifecycle, store, length):
        with pytest.raises(InvalidArgument):
            await lifecycle.create(length)
        assert await store.list_transfer_ids() == []

    async def test_retries_on_id_collision(self, store):
        taken = "a" * 32
        fresh = "b" * 32
        await store.create_namespace(taken)
        ids = iter([taken, fresh])

        lifecycle = TransferLifecycle(store, id_factory=lambda: next(ids))
        assert await lifecycle.create(5) == fresh

    async def test_gives_up_when_ids_keep_colliding(self, store):
        taken = "c" * 32
        await store.create_namespace(taken)

        lifecycle = TransferLifecycle(store, id_factory=lambda: taken)
        with pytest.raises(StorageUnavailable):
            await lifecycle.create(5)

    async def test_failed_metadata_write_leaves_nothing(self, lifecycle, store, monkeypatch):
        async def broken_write(transfer_id, metadata):
            raise StorageUnavailable("disk full")

        monkeypatch.setattr(store, "write_metadata", broken_write)

        with pytest.raises(StorageUnavailable):
            await lifecycle.create(10)
        assert await store.list_transfer_ids() == []


class TestFinalName:
    @pytest.mark.parametrize("requested,expected", [
        ("report.pdf", "report.pdf"),
        ("  spaced.txt ", "spaced.txt"),
        ("../../etc/passwd", "passwd"),
        ("dir/sub/file.bin", "file.bin"),
        ("C:\\Users\\me\\photo.jpg", "photo.jpg"),
        (None, "uploaded_file"),
        ("", "uploaded_file"),
        ("..", "uploaded_file"),
        ("dir/", "uploaded_file"),
        ("bad\x00name", "uploaded_file"),
    ])
    def test_sanitizes(self, lifecycle, requested, expected):
        assert lifecycle.final_name(requested) == expected

    def test_custom_default(self, store):
        lifecycle = TransferLifecycle(store, default_name="blob.bin")
        assert lifecycle.final_name(None) == "blob.bin"


class TestFinalize:
    async def _complete_transfer(self, lifecycle, store, data: bytes) -> str:
        transfer_id = await lifecycle.create(len(data))
        async with store.open_data(transfer_id) as f:
            await f.write(data)
        return transfer_id

    async def test_finalize_promotes_and_marks(self, lifecycle, store):
        transfer_id = await self._complete_transfer(lifecycle, store, b"HELLOWORLD")
        metadata = await store.read_metadata(transfer_id)

        path = await lifecycle.finalize(transfer_id, metadata, "hello.txt")

        assert path == store.files_dir / "hello.txt"
        assert path.read_bytes() == b"HELLOWORLD"
        stored = await store.read_metadata(transfer_id)
        assert stored.is_finalized
        assert stored.final_name == "hello.txt"

    async def test_finalize_failure_is_reported_not_raised(self, lifecycle, store, monkeypatch):
        transfer_id = await self._complete_transfer(lifecycle, store, b"HELLO")
        metadata = await store.read_metadata(transfer_id)

        async def broken_promote(transfer_id, name):
            raise StorageUnavailable("rename failed")

        monkeypatch.setattr(store, "promote", broken_promote)

        assert await lifecycle.finalize(transfer_id, metadata, "hello.txt") is None
        assert await store.data_size(transfer_id) == 5
        assert not (await store.read_metadata(transfer_id)).is_finalized

    async def test_promote_raises(self, lifecycle, store, monkeypatch):
        transfer_id = await self._complete_transfer(lifecycle, store, b"HELLO")
        metadata = await store.read_metadata(transfer_id)

        async def broken_promote(transfer_id, name):
            raise StorageUnavailable("rename failed")

        monkeypatch.setattr(store, "promote", broken_promote)

        with pytest.raises(StorageUnavailable):
            await lifecycle.promote(transfer_id, metadata, "hello.txt")

    async def test_name_is_recorded_before_the_move(self, lifecycle, store, monkeypatch):
        transfer_id = await self._complete_transfer(lifecycle, store, b"HELLO")
        metadata = await store.read_metadata(transfer_id)

        async def broken_promote(transfer_id, name):
            raise StorageUnavailable("rename failed")

        monkeypatch.setattr(store, "promote", broken_promote)

        with pytest.raises(StorageUnavailable):
            await lifecycle.promote(transfer_id, metadata, "hello.txt")

        stored = await store.read_metadata(transfer_id)
        assert stored.final_name == "hello.txt"
        assert stored.is_promoting

        # Data still in place, so this is just a failed attempt
        assert not (await lifecycle.load(transfer_id)).is_finalized

    async def test_lost_marker_is_repaired_on_load(self, lifecycle, store, monkeypatch):
        transfer_id = await self._complete_transfer(lifecycle, store, b"HELLO")
        metadata = await store.read_metadata(transfer_id)

        real_write = store.write_metadata

        async def marker_write_fails(transfer_id, metadata):
            if metadata.is_finalized:
                raise StorageUnavailable("disk full")
            await real_write(transfer_id, metadata)

        monkeypatch.setattr(store, "write_metadata", marker_write_fails)
        path = await lifecycle.promote(transfer_id, metadata, "hello.txt")
        monkeypatch.undo()

        assert path.read_bytes() == b"HELLO"
        assert not (await store.read_metadata(transfer_id)).is_finalized

        loaded = await lifecycle.load(transfer_id)
        assert loaded.is_finalized
        assert loaded.final_name == "hello.txt"
        assert (await store.read_metadata(transfer_id)).is_finalized

    async def test_load_without_artifact_is_not_finalized(self, lifecycle, store):
        transfer_id = await lifecycle.create(5)
        metadata = await store.read_metadata(transfer_id)
        metadata.final_name = "missing.txt"
        await store.write_metadata(transfer_id, metadata)

        assert not (await lifecycle.load(transfer_id)).is_finalized
