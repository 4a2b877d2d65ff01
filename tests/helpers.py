"""Test helpers: ABI fixtures, artifact writers and a fake execution session."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

CONFIG_VARS = (
    "EVMTEST_PROJECT_ROOT",
    "EVMTEST_BUILD_DIR",
    "EVMTEST_BUILD_COMMAND",
    "EVMTEST_RPC_URL",
    "EVMTEST_NODE_COMMAND",
    "EVMTEST_NODE_HOST",
    "EVMTEST_NODE_PORT",
    "EVMTEST_STARTUP_TIMEOUT",
    "EVMTEST_RECEIPT_TIMEOUT",
    "EVMTEST_CHAIN_ID",
    "EVMTEST_GAS_LIMIT",
    "EVMTEST_DISABLE_CODE_SIZE_LIMIT",
    "EVMTEST_PRIVATE_KEY",
    "EVMTEST_PRINT_GAS",
    "EVMTEST_NODE_OUTPUT",
)

OWNER = "0x5B38Da6a701c568545dCfcB03FcB875f56beddC4"
DEPLOYED = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def fn(name: str, inputs: list[str], outputs: list[str], mutability: str = "nonpayable") -> dict:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": f"a{i}", "type": t} for i, t in enumerate(inputs)],
        "outputs": [{"name": "", "type": t} for t in outputs],
        "stateMutability": mutability,
    }


def ctor(inputs: list[str]) -> dict:
    return {
        "type": "constructor",
        "inputs": [{"name": f"a{i}", "type": t} for i, t in enumerate(inputs)],
        "stateMutability": "nonpayable",
    }


ADDER_ABI = [fn("add", ["uint256", "uint256"], ["uint256"], "pure")]

COUNTER_ABI = [
    ctor(["uint256", "address"]),
    fn("count", [], ["uint256"], "view"),
    fn("increment", [], ["uint256"]),
    fn("reset", [], []),
    fn("state", [], ["uint256", "address"], "view"),
    {"type": "event", "name": "Incremented", "inputs": [], "anonymous": False},
]

REVERTER_ABI = [fn("fail", [], [], "pure")]


def write_foundry_artifact(
    build_dir: Path, source: str, name: str, abi: Any, bytecode: str = "0x6080604052"
) -> Path:
    path = build_dir / f"{source}.sol" / f"{name}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"abi": abi, "bytecode": {"object": bytecode, "linkReferences": {}}}))
    return path


def write_hardhat_artifact(
    build_dir: Path, source: str, name: str, abi: Any, bytecode: str = "0x6080604052"
) -> Path:
    path = build_dir / "contracts" / f"{source}.sol" / f"{name}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {
                "_format": "hh-sol-artifact-1",
                "contractName": name,
                "sourceName": f"contracts/{source}.sol",
                "abi": abi,
                "bytecode": bytecode,
                "deployedBytecode": bytecode,
                "linkReferences": {},
            }
        )
    )
    return path


class FakeSession:
    """Records deploy/call traffic instead of talking to a node."""

    def __init__(self, outputs: list[Any] | None = None) -> None:
        self.deploys: list[tuple] = []
        self.calls: list[dict] = []
        self.outputs = list(outputs or [])
        self.closed = False

    def deploy(self, bytecode: bytes, constructor_args: bytes = b"", value: int = 0) -> str:
        self.deploys.append((bytecode, constructor_args, value))
        return DEPLOYED

    def call(self, address, selector, args=b"", read_only=True, value=0, label=None) -> bytes:
        self.calls.append(
            {"address": address, "selector": selector, "args": args, "read_only": read_only, "value": value}
        )
        out = self.outputs.pop(0) if self.outputs else b""
        if isinstance(out, Exception):
            raise out
        return out

    def close(self) -> None:
        self.closed = True
