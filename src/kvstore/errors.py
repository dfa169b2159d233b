from __future__ import annotations


class KVStoreError(Exception):
    """Base class for everything raised by the kvstore package."""


class NotFound(KVStoreError):
    """The bucket or key supplied to get()/delete() does not exist."""


class BadValue(KVStoreError):
    """The value supplied to put() is None or cannot be encoded."""


class DecodeError(KVStoreError):
    """Stored bytes could not be decoded into the requested type."""


# ---- engine-level failures ----

class EngineError(KVStoreError):
    """Underlying storage failure (disk, corruption, locking)."""


class LockTimeout(EngineError):
    """Another process holds the database file."""


class EngineClosed(EngineError):
    """Operation attempted on a closed engine."""


class TxReadOnly(EngineError):
    """Write attempted inside a read-only transaction."""


class BucketNotFound(EngineError):
    """Bucket-level operation on a bucket that does not exist."""
