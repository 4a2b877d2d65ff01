"""
evmtest/abi.py

Turns the JSON ABI found in compiler artifacts into typed descriptors:
- TypeDescriptor: one ABI type (uint256, bytes32, (address,uint8)[], ...)
- MethodSignature: name + input/output types + state mutability
- MethodTable: the immutable name -> signature lookup a contract handle uses

Everything here is built once, when the artifact is parsed. Nothing looks up
methods by reflection later.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Sequence

from eth_utils import keccak

from evmtest.errors import UnknownMethodError

UINT = "uint"
INT = "int"
BOOL = "bool"
ADDRESS = "address"
BYTES = "bytes"
FIXED_BYTES = "fixed_bytes"
STRING = "string"
ARRAY = "array"
TUPLE = "tuple"
UNSUPPORTED = "unsupported"

READ_ONLY_MUTABILITY = ("view", "pure")

_ARRAY_SUFFIX = re.compile(r"\[(\d*)\]$")
_SIZED = re.compile(r"^(uint|int|bytes)(\d+)$")


@dataclass(frozen=True)
class TypeDescriptor:
    """
    One ABI type. `kind` is the tag; the other fields are only set for the
    kinds that need them:
      bits        uint / int
      size        fixed_bytes (byte count) / array (None means dynamic length)
      item        array
      components  tuple
      raw         unsupported (the type string as it appeared)
    """

    kind: str
    bits: int | None = None
    size: int | None = None
    item: TypeDescriptor | None = None
    components: tuple[TypeDescriptor, ...] = ()
    raw: str | None = None

    @property
    def canonical(self) -> str:
        if self.kind in (UINT, INT):
            return f"{self.kind}{self.bits}"
        if self.kind == FIXED_BYTES:
            return f"bytes{self.size}"
        if self.kind == ARRAY:
            dim = "" if self.size is None else str(self.size)
            return f"{self.item.canonical}[{dim}]"
        if self.kind == TUPLE:
            return "(" + ",".join(c.canonical for c in self.components) + ")"
        if self.kind == UNSUPPORTED:
            return self.raw or "?"
        return self.kind

    @property
    def is_dynamic(self) -> bool:
        if self.kind in (BYTES, STRING):
            return True
        if self.kind == ARRAY:
            return self.size is None or self.item.is_dynamic
        if self.kind == TUPLE:
            return any(c.is_dynamic for c in self.components)
        return False

    @property
    def is_supported(self) -> bool:
        if self.kind == UNSUPPORTED:
            return False
        if self.kind == ARRAY:
            return self.item.is_supported
        if self.kind == TUPLE:
            return all(c.is_supported for c in self.components)
        return True

    def __str__(self) -> str:
        return self.canonical


def _split_top_level(inner: str) -> list[str]:
    """Split 'a,(b,c),d[]' on commas that are not nested in parentheses."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(inner):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"Unbalanced parentheses in type: ({inner})")
        elif ch == "," and depth == 0:
            parts.append(inner[start:i])
            start = i + 1
    if depth != 0:
        raise ValueError(f"Unbalanced parentheses in type: ({inner})")
    parts.append(inner[start:])
    return [p.strip() for p in parts]


def _parse_base(base: str, components: Sequence[Any] | None) -> TypeDescriptor:
    if base == "tuple":
        if components is None:
            raise ValueError("tuple type without components")
        return TypeDescriptor(TUPLE, components=tuple(parse_type(c) for c in components))
    if base.startswith("(") and base.endswith(")"):
        inner = base[1:-1]
        if not inner.strip():
            return TypeDescriptor(TUPLE)
        return TypeDescriptor(TUPLE, components=tuple(parse_type_string(p) for p in _split_top_level(inner)))

    if base in (BOOL, ADDRESS, STRING, BYTES):
        return TypeDescriptor(base)
    # Solidity aliases
    if base in (UINT, INT):
        return TypeDescriptor(base, bits=256)

    m = _SIZED.match(base)
    if m:
        prefix, n = m.group(1), int(m.group(2))
        if prefix == "bytes":
            if 1 <= n <= 32:
                return TypeDescriptor(FIXED_BYTES, size=n)
        elif 8 <= n <= 256 and n % 8 == 0:
            return TypeDescriptor(prefix, bits=n)

    # fixed/ufixed, function, malformed widths ...
    return TypeDescriptor(UNSUPPORTED, raw=base)


def parse_type_string(type_str: str, components: Sequence[Any] | None = None) -> TypeDescriptor:
    """
    Parse a type string such as 'uint256[2][]' or '(address,bytes)'.
    `components` is the JSON ABI component list when the base is 'tuple'.
    """
    s = type_str.strip()
    if not s:
        raise ValueError("empty type string")

    # Peel array dimensions right to left; the innermost dimension is leftmost.
    dims: list[int | None] = []
    while True:
        m = _ARRAY_SUFFIX.search(s)
        if not m:
            break
        dims.append(int(m.group(1)) if m.group(1) else None)
        s = s[: m.start()]

    t = _parse_base(s, components)
    for size in reversed(dims):
        t = TypeDescriptor(ARRAY, size=size, item=t)
    return t


def parse_type(param: Mapping[str, Any]) -> TypeDescriptor:
    """Parse one JSON ABI parameter ({"type": ..., "components": [...]})."""
    if not isinstance(param, Mapping) or not isinstance(param.get("type"), str):
        raise ValueError(f"ABI parameter without a type: {param!r}")
    return parse_type_string(param["type"], param.get("components"))


@dataclass(frozen=True)
class MethodSignature:
    name: str
    inputs: tuple[TypeDescriptor, ...] = ()
    outputs: tuple[TypeDescriptor, ...] = ()
    state_mutability: str = "nonpayable"

    @property
    def signature(self) -> str:
        return f"{self.name}(" + ",".join(t.canonical for t in self.inputs) + ")"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:4]

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in READ_ONLY_MUTABILITY

    def __str__(self) -> str:
        outs = ",".join(t.canonical for t in self.outputs)
        return f"{self.signature} -> ({outs})"


def _mutability(entry: Mapping[str, Any]) -> str:
    # Pre-0.4.16 ABIs only carry constant/payable flags.
    if "stateMutability" in entry:
        return str(entry["stateMutability"])
    if entry.get("constant"):
        return "view"
    if entry.get("payable"):
        return "payable"
    return "nonpayable"


def _params(entry: Mapping[str, Any], key: str) -> tuple[TypeDescriptor, ...]:
    params = entry.get(key) or []
    if not isinstance(params, list):
        raise ValueError(f"'{key}' of {entry.get('name', entry.get('type'))!r} is not a list")
    return tuple(parse_type(p) for p in params)


def parse_interface(abi: Any) -> tuple[tuple[MethodSignature, ...], MethodSignature]:
    """
    Parse a JSON ABI array into (functions in declaration order, constructor).
    A contract without a constructor entry gets an empty-input constructor.
    Events, errors, fallback and receive entries are skipped.
    """
    if not isinstance(abi, list):
        raise ValueError("ABI is not a list")

    functions: list[MethodSignature] = []
    constructor = MethodSignature("constructor")

    for entry in abi:
        if not isinstance(entry, Mapping):
            raise ValueError(f"ABI entry is not an object: {entry!r}")
        # Old ABIs omit "type" for functions.
        kind = entry.get("type", "function")

        if kind == "function":
            name = entry.get("name")
            if not isinstance(name, str) or not name:
                raise ValueError(f"function entry without a name: {entry!r}")
            functions.append(
                MethodSignature(
                    name=name,
                    inputs=_params(entry, "inputs"),
                    outputs=_params(entry, "outputs"),
                    state_mutability=_mutability(entry),
                )
            )
        elif kind == "constructor":
            constructor = MethodSignature(
                name="constructor",
                inputs=_params(entry, "inputs"),
                state_mutability=_mutability(entry),
            )

    return tuple(functions), constructor


class MethodTable:
    """
    Immutable lookup from method name (first declared overload) or full
    signature string ('transfer(address,uint256)') to MethodSignature.
    """

    def __init__(self, functions: Sequence[MethodSignature]) -> None:
        by_name: dict[str, MethodSignature] = {}
        by_signature: dict[str, MethodSignature] = {}
        for fn in functions:
            by_name.setdefault(fn.name, fn)
            by_signature.setdefault(fn.signature, fn)
        self._functions = tuple(functions)
        self._by_name = MappingProxyType(by_name)
        self._by_signature = MappingProxyType(by_signature)

    def resolve(self, key: str) -> MethodSignature:
        fn = self._by_signature.get(key) if "(" in key else self._by_name.get(key)
        if fn is None:
            raise UnknownMethodError(f"No method {key!r}; known: {', '.join(sorted(self._by_name)) or '(none)'}")
        return fn

    def overloads(self, name: str) -> tuple[MethodSignature, ...]:
        return tuple(fn for fn in self._functions if fn.name == name)

    def __contains__(self, key: object) -> bool:
        return key in self._by_name or key in self._by_signature

    def __iter__(self) -> Iterator[MethodSignature]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)
