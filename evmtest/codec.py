"""
evmtest/codec.py

Host value <-> ABI bytes.

The byte layout (32-byte heads, offset/length tails for dynamic values) is
produced by eth-abi, the same encoder web3 uses, so it is bit-for-bit what the
node expects. This module sits in front of it and is strict about what it
accepts:
- no bools where ints are expected, no implicit widening/narrowing
- bytesN needs exactly N raw bytes (no str, no padding)
- every rejection names the argument position and the expected type

Host representation:
  uint/int   -> int
  bool       -> bool
  address    -> checksummed hex str (20 raw bytes are accepted on encode)
  bytes/N    -> bytes
  string     -> str
  T[] / T[N] -> list
  (A,B,...)  -> tuple
"""

from __future__ import annotations

from typing import Any, Sequence

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError as AbiDecodingError
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_utils import is_address, is_checksum_address, keccak, to_checksum_address

from evmtest.abi import (
    ADDRESS,
    ARRAY,
    BOOL,
    BYTES,
    FIXED_BYTES,
    INT,
    STRING,
    TUPLE,
    UINT,
    UNSUPPORTED,
    MethodSignature,
    TypeDescriptor,
    parse_type_string,
)
from evmtest.errors import ArityError, DecodingError, EncodingError

ERROR_STRING_SELECTOR = keccak(text="Error(string)")[:4]
PANIC_SELECTOR = keccak(text="Panic(uint256)")[:4]

_STRING_T = parse_type_string("string")
_UINT256_T = parse_type_string("uint256")


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_int(value: Any, t: TypeDescriptor, pos: str) -> int:
    # bool is an int subclass; never let True/False through as 1/0.
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(pos, t.canonical, f"expected int, got {_type_name(value)}")
    if t.kind == UINT:
        if value < 0:
            raise EncodingError(pos, t.canonical, f"negative value {value} for unsigned type")
        hi = 2 ** t.bits - 1
        if value > hi:
            raise EncodingError(pos, t.canonical, f"{value} exceeds maximum {hi}")
    else:
        lo, hi = -(2 ** (t.bits - 1)), 2 ** (t.bits - 1) - 1
        if not lo <= value <= hi:
            raise EncodingError(pos, t.canonical, f"{value} outside [{lo}, {hi}]")
    return value


def _sequence(value: Any, t: TypeDescriptor, pos: str) -> Sequence[Any]:
    if not isinstance(value, (list, tuple)):
        raise EncodingError(pos, t.canonical, f"expected list or tuple, got {_type_name(value)}")
    return value


def _normalize(value: Any, t: TypeDescriptor, pos: str) -> Any:
    """Validate `value` against `t` and return what eth-abi expects for it."""
    kind = t.kind

    if kind == UNSUPPORTED or not t.is_supported:
        raise EncodingError(pos, t.canonical, "unsupported ABI type")

    if kind in (UINT, INT):
        return _check_int(value, t, pos)

    if kind == BOOL:
        if not isinstance(value, bool):
            raise EncodingError(pos, t.canonical, f"expected bool, got {_type_name(value)}")
        return value

    if kind == ADDRESS:
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 20:
                raise EncodingError(pos, t.canonical, f"expected 20 bytes, got {len(value)}")
            return to_checksum_address(bytes(value))
        if not isinstance(value, str):
            raise EncodingError(pos, t.canonical, f"expected hex address, got {_type_name(value)}")
        if not is_address(value):
            raise EncodingError(pos, t.canonical, f"not a valid address: {value!r}")
        # Mixed case must be a valid EIP-55 checksum.
        digits = value[2:] if value[:2].lower() == "0x" else value
        if digits != digits.lower() and digits != digits.upper() and not is_checksum_address(value):
            raise EncodingError(pos, t.canonical, f"bad checksum: {value!r}")
        return to_checksum_address(value)

    if kind == FIXED_BYTES:
        if not isinstance(value, (bytes, bytearray)):
            raise EncodingError(pos, t.canonical, f"expected {t.size} raw bytes, got {_type_name(value)}")
        if len(value) != t.size:
            raise EncodingError(pos, t.canonical, f"expected exactly {t.size} bytes, got {len(value)}")
        return bytes(value)

    if kind == BYTES:
        if not isinstance(value, (bytes, bytearray)):
            raise EncodingError(pos, t.canonical, f"expected bytes, got {_type_name(value)}")
        return bytes(value)

    if kind == STRING:
        if not isinstance(value, str):
            raise EncodingError(pos, t.canonical, f"expected str, got {_type_name(value)}")
        return value

    if kind == ARRAY:
        items = _sequence(value, t, pos)
        if t.size is not None and len(items) != t.size:
            raise EncodingError(pos, t.canonical, f"expected {t.size} elements, got {len(items)}")
        return [_normalize(v, t.item, f"{pos}.{i}") for i, v in enumerate(items)]

    if kind == TUPLE:
        items = _sequence(value, t, pos)
        if len(items) != len(t.components):
            raise EncodingError(pos, t.canonical, f"expected {len(t.components)} fields, got {len(items)}")
        return tuple(_normalize(v, c, f"{pos}.{i}") for i, (v, c) in enumerate(zip(items, t.components)))

    raise EncodingError(pos, t.canonical, f"unknown type kind {kind!r}")


def _to_host(value: Any, t: TypeDescriptor) -> Any:
    if t.kind == ADDRESS:
        return to_checksum_address(value)
    if t.kind == ARRAY:
        return [_to_host(v, t.item) for v in value]
    if t.kind == TUPLE:
        return tuple(_to_host(v, c) for v, c in zip(value, t.components))
    return value


def encode(values: Sequence[Any], expected: Sequence[TypeDescriptor]) -> bytes:
    """Encode `values` as the ABI tuple of `expected` (no selector)."""
    if not isinstance(values, (list, tuple)):
        types = "(" + ",".join(t.canonical for t in expected) + ")"
        raise EncodingError("args", types, f"expected list or tuple of arguments, got {_type_name(values)}")
    if len(values) != len(expected):
        raise ArityError(len(expected), len(values))

    normalized = [_normalize(v, t, str(i)) for i, (v, t) in enumerate(zip(values, expected))]
    if not expected:
        return b""

    try:
        return abi_encode([t.canonical for t in expected], normalized)
    except AbiEncodingError as e:
        # Validation above should have caught this; keep the kind anyway.
        raise EncodingError("?", ",".join(t.canonical for t in expected), str(e)) from e


def decode(data: bytes, expected: Sequence[TypeDescriptor]) -> list[Any]:
    """Decode `data` as the ABI tuple of `expected`."""
    for i, t in enumerate(expected):
        if not t.is_supported:
            raise DecodingError(f"Output {i}: unsupported ABI type {t.canonical}")
    if not expected:
        return []

    try:
        raw = abi_decode([t.canonical for t in expected], bytes(data))
    except (AbiDecodingError, UnicodeDecodeError) as e:
        types = ",".join(t.canonical for t in expected)
        raise DecodingError(f"Cannot decode {len(data)} bytes as ({types}): {e}") from e

    return [_to_host(v, t) for v, t in zip(raw, expected)]


def encode_call(method: MethodSignature, args: Sequence[Any]) -> bytes:
    """Selector + encoded arguments, i.e. the calldata for `method`."""
    return method.selector + encode(args, method.inputs)


def decode_revert(payload: bytes) -> str | None:
    """
    Render a revert payload:
    - Error(string)  -> the message
    - Panic(uint256) -> 'Panic(0x11)'
    - anything else (custom errors, empty) -> None
    """
    payload = bytes(payload or b"")
    selector, body = payload[:4], payload[4:]
    try:
        if selector == ERROR_STRING_SELECTOR:
            return decode(body, [_STRING_T])[0]
        if selector == PANIC_SELECTOR:
            code = decode(body, [_UINT256_T])[0]
            return f"Panic(0x{code:02x})"
    except DecodingError:
        return None
    return None
