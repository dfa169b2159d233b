import os
import stat

import pytest

from kvstore.engine import Engine
from kvstore.errors import BucketNotFound, EngineClosed, EngineError, LockTimeout, TxReadOnly


@pytest.mark.asyncio
async def test_open_creates_file_with_restrictive_mode(tmp_path):
    path = tmp_path / "state.db"
    engine = await Engine.open(path)
    try:
        assert path.exists()
        assert stat.S_IMODE(os.stat(path).st_mode) & 0o007 == 0
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_second_open_times_out_instead_of_blocking(tmp_path):
    path = tmp_path / "state.db"
    first = await Engine.open(path)
    try:
        with pytest.raises(LockTimeout):
            await Engine.open(path, timeout=0.05)
    finally:
        await first.close()

    # lock is released on close
    again = await Engine.open(path)
    await again.close()


@pytest.mark.asyncio
async def test_open_rejects_non_database_file(tmp_path):
    path = tmp_path / "junk.db"
    path.write_bytes(b"this is definitely not an sqlite file" * 200)
    with pytest.raises(EngineError):
        await Engine.open(path)


@pytest.mark.asyncio
async def test_open_missing_directory_is_engine_error(tmp_path):
    with pytest.raises(EngineError):
        await Engine.open(tmp_path / "nope" / "state.db")


@pytest.mark.asyncio
async def test_update_commits_and_view_sees_it(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    try:
        async with engine.update() as tx:
            b = await tx.create_bucket_if_not_exists(b"p")
            await b.put(b"k", b"v1")

        async with engine.view() as tx:
            b = await tx.bucket(b"p")
            assert b is not None
            assert await b.get(b"k") == b"v1"
            assert await tx.bucket(b"other") is None
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_exception_in_update_rolls_back(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    try:
        with pytest.raises(RuntimeError, match="boom"):
            async with engine.update() as tx:
                b = await tx.create_bucket_if_not_exists(b"p")
                await b.put(b"k", b"v")
                raise RuntimeError("boom")

        async with engine.view() as tx:
            assert await tx.bucket(b"p") is None
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_view_is_read_only(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    try:
        async with engine.update() as tx:
            await tx.create_bucket_if_not_exists(b"p")

        async with engine.view() as tx:
            with pytest.raises(TxReadOnly):
                await tx.create_bucket_if_not_exists(b"q")
            b = await tx.bucket(b"p")
            with pytest.raises(TxReadOnly):
                await b.put(b"k", b"v")
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_cursor_seek_returns_next_key_at_or_after(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    try:
        async with engine.update() as tx:
            b = await tx.create_bucket_if_not_exists(b"p")
            for k in (b"ab", b"b", b"ba"):
                await b.put(k, k.upper())

        async with engine.view() as tx:
            c = (await tx.bucket(b"p")).cursor()
            assert await c.seek(b"a") == (b"ab", b"AB")
            assert await c.seek(b"b") == (b"b", b"B")
            assert await c.next() == (b"ba", b"BA")
            assert await c.next() == (None, None)
            assert await c.seek(b"c") == (None, None)

            keys = []
            k, _ = await c.first()
            while k is not None:
                keys.append(k)
                k, _ = await c.next()
            assert keys == [b"ab", b"b", b"ba"]
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_cursor_delete_and_bucket_delete(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    try:
        async with engine.update() as tx:
            b = await tx.create_bucket_if_not_exists(b"p")
            await b.put(b"x", b"1")
            await b.put(b"y", b"2")
            c = b.cursor()
            await c.seek(b"x")
            await c.delete()
            assert await b.get(b"x") is None
            assert await b.get(b"y") == b"2"

        async with engine.update() as tx:
            await tx.delete_bucket(b"p")
            assert await tx.bucket(b"p") is None
            with pytest.raises(BucketNotFound):
                await tx.delete_bucket(b"p")
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path):
    path = tmp_path / "state.db"
    engine = await Engine.open(path)
    async with engine.update() as tx:
        b = await tx.create_bucket_if_not_exists(b"p")
        await b.put(b"k", b"v")
    await engine.close()

    engine = await Engine.open(path)
    try:
        async with engine.view() as tx:
            assert await (await tx.bucket(b"p")).get(b"k") == b"v"
    finally:
        await engine.close()


@pytest.mark.asyncio
async def test_closed_engine_refuses_transactions(tmp_path):
    engine = await Engine.open(tmp_path / "state.db")
    await engine.close()
    await engine.close()  # idempotent
    assert engine.closed

    with pytest.raises(EngineClosed):
        async with engine.view():
            pass
    with pytest.raises(EngineClosed):
        async with engine.update():
            pass
