"""
evmtest

Deploy and call compiled Solidity contracts from pytest against a throwaway
local node.

    from evmtest import Runner, CallRevertedError

    with Runner() as runner:
        adder = runner.deploy("Adder")
        assert adder.call("add", (2, 3)) == 5
"""

from evmtest.abi import MethodSignature, TypeDescriptor, parse_type, parse_type_string
from evmtest.artifacts import Artifact, locate_artifacts
from evmtest.chain import Session
from evmtest.codec import decode, decode_revert, encode
from evmtest.config import HarnessConfig, load_config
from evmtest.contract import ContractHandle
from evmtest.errors import (
    ArityError,
    BackendUnavailableError,
    BuildError,
    CallRevertedError,
    ConfigError,
    ConflictError,
    DecodingError,
    DeploymentError,
    DiscoveryError,
    EncodingError,
    HarnessError,
    ParseError,
    TransportError,
    UnknownContractError,
    UnknownMethodError,
)
from evmtest.runner import Runner

__version__ = "0.1.0"

__all__ = [
    "Runner",
    "ContractHandle",
    "Session",
    "Artifact",
    "HarnessConfig",
    "MethodSignature",
    TypeDescriptor,
    "load_config",
    "locate_artifacts",
    "parse_type",
    "parse_type_string",
    "encode",
    "decode",
    "decode_revert",
    "HarnessError",
    "ConfigError",
    "BuildError",
    "DiscoveryError",
    "ParseError",
    "ConflictError",
    "ArityError",
    "EncodingError",
    "DecodingError",
    "BackendUnavailableError",
    "DeploymentError",
    "CallRevertedError",
    "TransportError",
    "UnknownContractError",
    "UnknownMethodError",
]
