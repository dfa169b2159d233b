from __future__ import annotations

import os
from typing import Any, Optional, TypeVar, overload

from kvstore import codec
from kvstore.engine import Engine
from kvstore.errors import BadValue, NotFound

T = TypeVar("T")


def _name(s: str, what: str) -> bytes:
    try:
        return s.encode()
    except UnicodeEncodeError as e:
        # lone surrogates have no UTF-8 form
        raise BadValue(f"{what} {s!r} is not valid UTF-8") from e


class KVStore:
    """
    Persistent, bucketed key/value store for Python values.

    Maps (bucket, key) strings to any value the codec can encode. All methods
    are coroutines and safe for concurrent use from many tasks.

    Only one process may have the file open at a time; a second open()
    fails with LockTimeout after `timeout` seconds.

        store = await KVStore.open("state.db")
        await store.put("pastes", "key42", {"title": "hello", "size": 12})
        rec = await store.get("pastes", "key42", dict[str, Any])
        await store.get("pastes", "key42")       # presence check only
        await store.delete("pastes", "key42")
        await store.close()

    get()/delete() raise NotFound for a missing bucket or key, put() raises
    BadValue for None. A bucket or key name that cannot be encoded as UTF-8
    raises BadValue from any method. Engine failures propagate as EngineError.
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    @classmethod
    async def open(cls, path: str | os.PathLike, *, timeout: float = 0.05) -> "KVStore":
        """Open the store file at `path`; created with mode 0640 if needed."""
        return cls(await Engine.open(path, timeout=timeout))

    async def close(self) -> None:
        await self._engine.close()

    async def __aenter__(self) -> "KVStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------------------------- public API ---------------------------- #

    async def add_bucket(self, bucket: str) -> None:
        """Create `bucket` if it does not exist yet."""
        bn = _name(bucket, "bucket")
        async with self._engine.update() as tx:
            await tx.create_bucket_if_not_exists(bn)

    async def put(self, bucket: str, key: str, value: Any) -> None:
        """
        Store `value` under `key`, replacing any previous value. The key may be
        an empty string; the value may not be None.

            await store.put("b", "key42", 156)
            await store.put("b", "key42", "this is a string")
            await store.put("b", "key43", {"harry": 100, "emma": 101})
        """
        # encode first so a bad value never touches the file
        data = codec.encode(value)
        bn, k = _name(bucket, "bucket"), _name(key, "key")
        # bucket creation and the write commit together
        async with self._engine.update() as tx:
            b = await tx.create_bucket_if_not_exists(bn)
            await b.put(k, data)

    @overload
    async def get(self, bucket: str, key: str) -> None: ...

    @overload
    async def get(self, bucket: str, key: str, type_: type[T]) -> T: ...

    async def get(self, bucket: str, key: str, type_: Optional[type[T]] = None) -> Optional[T]:
        """
        Fetch the value under `key` decoded as `type_`.

        With no `type_` the stored bytes are not decoded and None is returned,
        which makes get() a presence test:

            try:
                await store.get("b", "key42")
            except NotFound:
                ...  # absent

        A value that doesn't fit `type_` raises DecodeError, not NotFound.
        """
        bn, k = _name(bucket, "bucket"), _name(key, "key")
        async with self._engine.view() as tx:
            b = await tx.bucket(bn)
            if b is None:
                raise NotFound(f"bucket {bucket!r} not found")
            found, data = await b.cursor().seek(k)
            if found is None or found != k:
                raise NotFound(f"key {key!r} not found in {bucket!r}")

        if type_ is None:
            return None
        return codec.decode(data, type_)

    async def delete(self, bucket: str, key: str) -> None:
        """Remove `key`. Raises NotFound if it isn't there."""
        bn, k = _name(bucket, "bucket"), _name(key, "key")
        async with self._engine.update() as tx:
            b = await tx.bucket(bn)
            if b is None:
                raise NotFound(f"bucket {bucket!r} not found")
            c = b.cursor()
            found, _ = await c.seek(k)
            if found is None or found != k:
                raise NotFound(f"key {key!r} not found in {bucket!r}")
            await c.delete()

    async def keys(self, bucket: str) -> list[str]:
        """All keys of `bucket` in byte order (empty if the bucket is absent)."""
        bn = _name(bucket, "bucket")
        out: list[str] = []
        async with self._engine.view() as tx:
            b = await tx.bucket(bn)
            if b is None:
                return out
            c = b.cursor()
            k, _ = await c.first()
            while k is not None:
                out.append(k.decode())
                k, _ = await c.next()
        return out
