"""
evmtest/artifacts.py

Finds compiled-contract artifacts under the build output directory and parses
each into an Artifact (name, deploy bytecode, typed interface).

Understands both layouts:
- Foundry:  out/<Source>.sol/<Name>.json      bytecode = {"object": "0x..."}
- Hardhat:  artifacts/contracts/<Source>.sol/<Name>.json
            contractName = "<Name>", bytecode = "0x..."

build-info/ directories, Hardhat *.dbg.json and Foundry *.metadata.json files
are not artifacts and are skipped.

The scan runs once per Runner. There is no cache and no file watching; rebuild
and construct a new Runner to pick up changes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from eth_utils import decode_hex

from evmtest.abi import MethodSignature, MethodTable, parse_interface
from evmtest.errors import ConflictError, DiscoveryError, ParseError

SKIP_DIRS = ("build-info",)
SKIP_SUFFIXES = (".dbg.json", ".metadata.json")


@dataclass(frozen=True)
class Artifact:
    name: str
    bytecode: bytes
    interface: tuple[MethodSignature, ...]
    constructor: MethodSignature
    path: Path
    # Library names still to be linked; such bytecode cannot be deployed as-is.
    unlinked_libraries: tuple[str, ...] = ()
    methods: MethodTable = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "methods", MethodTable(self.interface))

    @property
    def is_deployable(self) -> bool:
        return bool(self.bytecode) and not self.unlinked_libraries


def iter_metadata_files(build_path: Path) -> Iterator[Path]:
    """Yield candidate artifact files in a stable (sorted) order."""
    for p in sorted(build_path.rglob("*.json")):
        rel = p.relative_to(build_path)
        if any(part in SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if p.name.endswith(SKIP_SUFFIXES):
            continue
        yield p


def _bytecode_hex(data: Mapping[str, Any], path: Path) -> str:
    if "bytecode" not in data:
        raise ParseError(str(path), "no 'bytecode' field")
    raw = data["bytecode"]
    # Foundry nests the hex under "object".
    if isinstance(raw, Mapping):
        raw = raw.get("object")
    if not isinstance(raw, str):
        raise ParseError(str(path), f"bytecode is not a hex string: {type(raw).__name__}")
    return raw


def _link_references(data: Mapping[str, Any]) -> tuple[str, ...]:
    refs = data.get("linkReferences")
    if refs is None and isinstance(data.get("bytecode"), Mapping):
        refs = data["bytecode"].get("linkReferences")
    names = []
    for libs in (refs or {}).values():
        if isinstance(libs, Mapping):
            names.extend(libs.keys())
    return tuple(sorted(names))


def parse_artifact(path: Path) -> Artifact:
    """Parse one metadata file. Any malformation is a ParseError naming the file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(str(path), f"unreadable JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(str(path), "top-level JSON value is not an object")
    if "abi" not in data:
        raise ParseError(str(path), "no 'abi' field")

    name = data.get("contractName") or Path(path).name.split(".")[0]
    if not isinstance(name, str) or not name:
        raise ParseError(str(path), "cannot determine contract name")

    code_hex = _bytecode_hex(data, path)
    unlinked: tuple[str, ...] = ()
    # Unlinked library placeholders (__$...$__) are not hex.
    if "__" in code_hex:
        unlinked = _link_references(data) or ("<unknown>",)
        bytecode = b""
    else:
        try:
            bytecode = decode_hex(code_hex) if code_hex else b""
        except ValueError as e:
            raise ParseError(str(path), f"bytecode is not valid hex: {e}") from e

    try:
        functions, constructor = parse_interface(data["abi"])
    except ValueError as e:
        raise ParseError(str(path), f"bad ABI: {e}") from e

    return Artifact(
        name=name,
        bytecode=bytecode,
        interface=functions,
        constructor=constructor,
        path=Path(path),
        unlinked_libraries=unlinked,
    )


def locate_artifacts(build_path: Path) -> Mapping[str, Artifact]:
    """
    Scan `build_path` recursively and return a read-only name -> Artifact map.

    Raises:
      DiscoveryError  build dir missing, or holds no artifacts
      ParseError      a metadata file is malformed
      ConflictError   two files define the same contract name
    """
    build_path = Path(build_path)
    if not build_path.is_dir():
        raise DiscoveryError(
            f"Build output directory not found: {build_path}. "
            "Run the contract build (e.g. `forge build`) first."
        )

    found: dict[str, Artifact] = {}
    for p in iter_metadata_files(build_path):
        artifact = parse_artifact(p)
        prev = found.get(artifact.name)
        if prev is not None:
            raise ConflictError(artifact.name, [str(prev.path), str(p)])
        found[artifact.name] = artifact

    if not found:
        raise DiscoveryError(f"No contract artifacts found under {build_path}")

    return MappingProxyType(found)
