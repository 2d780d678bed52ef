"""
Value encoder: backend column type + loaded cell -> (name, tag, value) triple.

Decoders are looked up by the column's type OID in a DecoderRegistry. Types
registered by PostgreSQL name get their array OID registered as well. Any OID
without a decoder goes through the fallback, which never fails the query:

- None (SQL NULL) is always "<<null>>", whatever the tag.
- Raw bytes from unknown types are decoded as UTF-8 with replacement.
- Anything that still cannot be turned into text becomes "<<unsupported type>>".
"""

import json
import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from psycopg.postgres import types as pg_types

_log = logging.getLogger(__name__)

NULL_SENTINEL = "<<null>>"
UNSUPPORTED_SENTINEL = "<<unsupported type>>"


class Tag(str, Enum):
    """Coarse display category attached to every encoded cell."""

    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"


class TypedValue(NamedTuple):
    """One encoded cell. Serializes to a [name, tag, value] JSON array."""

    name: str
    tag: str
    value: str


def _identity(value: Any) -> Any:
    return value


def _decode_bool(value: Any) -> str:
    return "true" if value else "false"


def _decode_bytes(value: Any) -> str:
    return bytes(value).hex()


def _decode_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _number_element(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


def _char_byte(value: Any) -> int:
    data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
    if len(data) == 4 and data[:1] == b"\\":
        # high bytes come over the wire as an octal escape
        data = bytes([int(data[1:], 8)])
    return int.from_bytes(data[:1] or b"\0", "big", signed=True)


def _decode_char(value: Any) -> str:
    return str(_char_byte(value))


def _decode_fallback(value: Any) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return str(value)


@dataclass(frozen=True)
class Decoder:
    """
    How to encode one backend type.

    - decode: non-null loaded value -> display string.
    - element: non-null value -> JSON-ready form when it appears inside an
      array (defaults to decode).
    """

    tag: Tag
    decode: Callable[[Any], str]
    element: Callable[[Any], Any] | None = None

    def to_element(self, value: Any) -> Any:
        if self.element is not None:
            return self.element(value)
        return self.decode(value)


FALLBACK_DECODER = Decoder(Tag.STRING, _decode_fallback)


class DecoderRegistry:
    """OID -> Decoder table with a fallback entry for unregistered types."""

    def __init__(self, fallback: Decoder = FALLBACK_DECODER) -> None:
        self._by_oid: dict[int, Decoder] = {}
        self._fallback = fallback

    def register(
        self,
        type_name: str,
        tag: Tag,
        decode: Callable[[Any], str],
        *,
        element: Callable[[Any], Any] | None = None,
    ) -> None:
        """
        Register a decoder for a builtin PostgreSQL type by name, plus an
        array decoder for its array type.
        """
        info = pg_types[type_name]
        scalar = Decoder(tag, decode, element)
        self._by_oid[info.oid] = scalar
        if info.array_oid:
            self._by_oid[info.array_oid] = _array_decoder(scalar)

    def register_oid(self, oid: int, decoder: Decoder) -> None:
        """Register a decoder for a specific OID (e.g. a custom enum type)."""
        self._by_oid[oid] = decoder

    def lookup(self, oid: int) -> Decoder:
        return self._by_oid.get(oid, self._fallback)

    def __contains__(self, oid: object) -> bool:
        return oid in self._by_oid

    def raw_text_oids(self) -> list[int]:
        """
        OIDs psycopg would load into Python objects but that have no decoder
        here. Loading them as raw bytes lets the fallback show the server text.
        """
        oids = []
        for info in pg_types:
            for oid in (info.oid, info.array_oid):
                if oid and oid not in self._by_oid:
                    oids.append(oid)
        return oids

    def encode(self, name: str, oid: int, raw: Any) -> TypedValue:
        decoder = self.lookup(oid)
        if raw is None:
            return TypedValue(name, decoder.tag.value, NULL_SENTINEL)
        try:
            return TypedValue(name, decoder.tag.value, decoder.decode(raw))
        except Exception as e:
            _log.warning(
                "Cannot decode column %r (oid %s): %s", name, oid, e, exc_info=True
            )
            return TypedValue(name, Tag.STRING.value, UNSUPPORTED_SENTINEL)


def _array_decoder(scalar: Decoder) -> Decoder:
    def render(value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            # Multi-dimensional arrays load as nested lists
            return [render(v) for v in value]
        return scalar.to_element(value)

    def decode(values: Sequence[Any]) -> str:
        return json.dumps(render(list(values)), ensure_ascii=False)

    return Decoder(Tag.ARRAY, decode)


def build_default_registry() -> DecoderRegistry:
    registry = DecoderRegistry()
    registry.register("bool", Tag.BOOL, _decode_bool, element=_identity)
    registry.register('"char"', Tag.NUMBER, _decode_char, element=_char_byte)
    for name in ("int2", "int4", "int8", "float4", "float8"):
        registry.register(name, Tag.NUMBER, str, element=_number_element)
    registry.register("bytea", Tag.STRING, _decode_bytes)
    for name in ("text", "varchar", "bpchar", "name"):
        registry.register(name, Tag.STRING, str)
    for name in ("json", "jsonb"):
        registry.register(name, Tag.STRING, _decode_json, element=_identity)
    for name in ("timestamp", "timestamptz", "date", "time", "timetz", "uuid"):
        registry.register(name, Tag.STRING, str)
    return registry


default_registry = build_default_registry()


def encode(name: str, type_oid: int, raw: Any) -> TypedValue:
    """Encode one cell with the default registry."""
    return default_registry.encode(name, type_oid, raw)


def encode_row(
    columns: Sequence[Any],
    row: Sequence[Any],
    *,
    registry: DecoderRegistry | None = None,
) -> list[TypedValue]:
    """Encode a row in column order. columns are (name, type_oid) pairs."""
    reg = registry or default_registry
    return [
        reg.encode(name, oid, raw) for (name, oid), raw in zip(columns, row, strict=True)
    ]
