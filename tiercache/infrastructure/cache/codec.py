"""
Value Codec

Turns typed values into the JSON strings both tiers store, and back.

Encoding goes through a pydantic ``TypeAdapter`` (so models, dataclasses,
TypedDicts and generic aliases all work) and orjson for the JSON text.
Decoding validates the parsed JSON against the requested type, so a stored
payload that does not fit the caller's type fails loudly.
"""

from functools import lru_cache
from typing import Any, TypeVar

import orjson
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from tiercache.core.exceptions import CacheSerializationError

T = TypeVar("T")


@lru_cache(maxsize=256)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


def _model_name(model: Any) -> str:
    return getattr(model, "__name__", None) or repr(model)


class ValueCodec:
    """
    JSON codec for cached values.

    Usage:
        codec = ValueCodec()
        payload = codec.encode(User(id=42, name="Ada"), User)
        user = codec.decode(payload, User)
    """

    def encode(self, value: Any, model: Any = None, key: str | None = None) -> str:
        """
        Serialize ``value`` to a JSON string.

        Args:
            value: Value to serialize
            model: Declared type of the value (defaults to ``type(value)``)
            key: Cache key, for error context only

        Raises:
            CacheSerializationError: If the value cannot be represented as JSON
        """
        model = type(value) if model is None else model
        try:
            plain = _adapter(model).dump_python(value, mode="json")
            return orjson.dumps(plain).decode("utf-8")
        except (PydanticSerializationError, orjson.JSONEncodeError, TypeError, ValueError) as e:
            raise CacheSerializationError(
                f"Cannot encode value as {_model_name(model)}: {e}",
                key=key,
                details={"model": _model_name(model), "value_type": type(value).__name__},
            ) from e

    def decode(self, payload: str, model: type[T] | Any, key: str | None = None) -> T:
        """
        Deserialize a JSON string into ``model``.

        Raises:
            CacheSerializationError: If the payload is not JSON or does not
                validate against ``model``
        """
        try:
            return _adapter(model).validate_python(orjson.loads(payload))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            raise CacheSerializationError(
                f"Cannot decode cached payload as {_model_name(model)}: {e}",
                key=key,
                details={"model": _model_name(model), "payload_length": len(payload)},
            ) from e
