from __future__ import annotations

from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from kvstore.errors import BadValue, DecodeError

T = TypeVar("T")


def encode(value: Any) -> bytes:
    """
    Encode `value` as JSON bytes.

    Handles primitives, lists/tuples, str-keyed dicts, dataclasses, pydantic
    models, datetimes and any nesting of those. None is rejected.
    """
    if value is None:
        raise BadValue("value must not be None")
    try:
        return to_json(value)
    except PydanticSerializationError as e:
        raise BadValue(f"cannot encode {type(value).__name__}: {e}") from e


def decode(data: bytes, type_: type[T]) -> T:
    """Decode JSON bytes produced by encode() into an instance of `type_`."""
    try:
        return _adapter(type_).validate_json(data, strict=True)
    except ValidationError as e:
        raise DecodeError(f"stored value is not a valid {_type_name(type_)}: {e}") from e


@lru_cache(maxsize=256)
def _adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def _type_name(type_: Any) -> str:
    return getattr(type_, "__name__", None) or repr(type_)
