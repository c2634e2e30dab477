import asyncio

import pytest

from file_registry_service.exceptions import BlobNotFound, StorageIOError, UploadTooLarge

async def chunks(*parts, fail_after=None):
    for index, part in enumerate(parts):
        if fail_after is not None and index == fail_after:
            raise ConnectionResetError("client went away")
        yield part

@pytest.mark.asyncio
async def test_save_bytes(blob_store):
    written = await blob_store.save(b"hello classroom", "abc.txt")

    assert written == len(b"hello classroom")
    assert blob_store.path_for("abc.txt").read_bytes() == b"hello classroom"
    assert await blob_store.exists("abc.txt")

@pytest.mark.asyncio
async def test_save_stream(blob_store):
    written = await blob_store.save(chunks(b"one ", b"two ", b"three"), "stream.bin")

    assert written == 13
    assert blob_store.path_for("stream.bin").read_bytes() == b"one two three"

@pytest.mark.asyncio
async def test_interrupted_stream_leaves_nothing(blob_store):
    with pytest.raises(StorageIOError):
        await blob_store.save(chunks(b"one ", b"two ", fail_after=1), "broken.bin")

    assert not await blob_store.exists("broken.bin")
    assert list(blob_store.base_path.iterdir()) == []

@pytest.mark.asyncio
async def test_cancelled_save_leaves_nothing(blob_store):
    started = asyncio.Event()

    async def slow_source():
        yield b"first chunk"
        started.set()
        await asyncio.sleep(10)
        yield b"never written"

    task = asyncio.create_task(blob_store.save(slow_source(), "slow.bin"))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert list(blob_store.base_path.iterdir()) == []

@pytest.mark.asyncio
async def test_save_over_limit_is_rejected(blob_store):
    with pytest.raises(UploadTooLarge):
        await blob_store.save(chunks(b"x" * 600, b"x" * 600), "big.bin", max_bytes=1000)

    with pytest.raises(UploadTooLarge):
        await blob_store.save(b"x" * 1001, "big.bin", max_bytes=1000)

    assert list(blob_store.base_path.iterdir()) == []

@pytest.mark.asyncio
async def test_delete(blob_store):
    await blob_store.save(b"data", "gone.txt")
    await blob_store.delete("gone.txt")

    assert not await blob_store.exists("gone.txt")
    with pytest.raises(BlobNotFound):
        await blob_store.delete("gone.txt")

@pytest.mark.asyncio
async def test_open_outlives_delete(blob_store):
    await blob_store.save(b"still here", "held.txt")

    blob = await blob_store.open("held.txt")
    await blob_store.delete("held.txt")

    try:
        assert await blob.read() == b"still here"
    finally:
        await blob.close()
    with pytest.raises(BlobNotFound):
        await blob_store.open("held.txt")

def test_path_for_rejects_traversal(blob_store):
    for name in ("../escape.txt", "nested/file.txt", "..", ""):
        with pytest.raises(ValueError):
            blob_store.path_for(name)
