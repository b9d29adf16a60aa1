"""
polycache - Serialization Strategies

Converts application values to and from the bytes every backend stores.

Strategies:
- pickle: generic structural serialization (default), round-trips nested values
- json: structural, limited to JSON types
- string: lossy coercion via str(); reads return the stored text verbatim
"""

from __future__ import annotations

import json
import pickle
from collections.abc import Callable
from typing import Any

from ..errors import ConfigurationError


class Serializer:
    """A symmetric pair of conversion functions around the backend boundary."""

    name = "custom"

    def __init__(
        self,
        dumps: Callable[[Any], Any],
        loads: Callable[[bytes], Any],
    ) -> None:
        self._dumps = dumps
        self._loads = loads

    def dumps(self, value: Any) -> bytes:
        """Serialize a value; text results are encoded as UTF-8."""
        data = self._dumps(value)
        if isinstance(data, str):
            return data.encode("utf-8")
        if isinstance(data, (bytes, bytearray, memoryview)):
            return bytes(data)
        raise TypeError(f"serializer returned {type(data).__name__}, expected bytes or str")

    def loads(self, data: bytes) -> Any:
        """Deserialize bytes read from a backend."""
        return self._loads(data)


class PickleSerializer(Serializer):
    name = "pickle"

    def __init__(self) -> None:
        super().__init__(
            lambda value: pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL),
            pickle.loads,
        )


class JSONSerializer(Serializer):
    name = "json"

    def __init__(self) -> None:
        super().__init__(
            lambda value: json.dumps(value, ensure_ascii=False, separators=(",", ":")),
            json.loads,
        )


def _to_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class StringSerializer(Serializer):
    """Coerces every value to text; type fidelity is not preserved."""

    name = "string"

    def __init__(self) -> None:
        super().__init__(_to_text, lambda data: data.decode("utf-8"))


_NAMED: dict[str, type[Serializer]] = {
    "pickle": PickleSerializer,
    "json": JSONSerializer,
    "string": StringSerializer,
}


def resolve_serializer(
    serializer: str | Callable[[Any], Any] | None,
    deserializer: str | Callable[[Any], Any] | None,
) -> Serializer:
    """
    Build the serializer pair from the facade options.

    A named strategy given for only one side is paired with its own
    counterpart. A custom callable must come with a matching deserializer.

    Raises:
        ConfigurationError: If the pair cannot be resolved
    """
    if serializer is None and deserializer is None:
        return PickleSerializer()

    if isinstance(serializer, str) and deserializer in (None, serializer):
        return _named(serializer)
    if isinstance(deserializer, str) and serializer is None:
        return _named(deserializer)

    if serializer is None or deserializer is None:
        raise ConfigurationError(
            "A custom serializer requires a matching deserializer",
            details={"serializer": repr(serializer), "deserializer": repr(deserializer)},
        )

    dumps = _named(serializer).dumps if isinstance(serializer, str) else serializer
    loads = _named(deserializer).loads if isinstance(deserializer, str) else deserializer
    return Serializer(dumps, loads)


def _named(name: str) -> Serializer:
    try:
        return _NAMED[name]()
    except KeyError as e:
        raise ConfigurationError(
            f"Unknown serializer: {name}",
            details={"serializer": name, "supported": sorted(_NAMED)},
        ) from e
