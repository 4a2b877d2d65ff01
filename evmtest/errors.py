"""
evmtest/errors.py

Every failure the harness can report. Tests assert on these classes, so each
phase gets its own base:
- ArtifactError: locating and parsing build output
- CodecError: encoding arguments / decoding results
- BackendError: talking to the node
- LookupFailure: unknown contract or method names
"""

from __future__ import annotations

from typing import Sequence


class HarnessError(Exception):
    """Base class for everything raised by evmtest."""


class ConfigError(HarnessError):
    pass


class BuildError(HarnessError):
    """The external build command exited non-zero."""

    def __init__(self, command: str, returncode: int, output: str) -> None:
        super().__init__(f"Build command failed ({returncode}): {command}\n{output}")
        self.command = command
        self.returncode = returncode
        self.output = output


# ----------------------------
# Artifact discovery
# ----------------------------

class ArtifactError(HarnessError):
    pass


class DiscoveryError(ArtifactError):
    pass


class ParseError(ArtifactError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class ConflictError(ArtifactError):
    def __init__(self, name: str, paths: Sequence[str]) -> None:
        joined = ", ".join(paths)
        super().__init__(f"Contract name {name!r} is defined more than once: {joined}")
        self.name = name
        self.paths = tuple(paths)


# ----------------------------
# Codec
# ----------------------------

class CodecError(HarnessError):
    pass


class ArityError(CodecError):
    def __init__(self, expected: int, got: int, what: str = "values") -> None:
        super().__init__(f"Expected {expected} {what}, got {got}")
        self.expected = expected
        self.got = got


class EncodingError(CodecError):
    """A host value cannot be represented as the ABI type at `position`."""

    def __init__(self, position: str, expected: str, message: str) -> None:
        super().__init__(f"Argument {position} ({expected}): {message}")
        self.position = position
        self.expected = expected


class DecodingError(CodecError):
    pass


# ----------------------------
# Backend
# ----------------------------

class BackendError(HarnessError):
    pass


class BackendUnavailableError(BackendError):
    pass


class DeploymentError(BackendError):
    def __init__(self, message: str, payload: bytes = b"") -> None:
        super().__init__(message)
        self.payload = payload


class CallRevertedError(BackendError):
    """
    The contract reverted. This is an expected, assertable outcome:
    `reason` holds the decoded revert string when there is one and
    `payload` the raw revert data.
    """

    def __init__(self, message: str, payload: bytes = b"", reason: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload
        self.reason = reason


class TransportError(BackendError):
    pass


# ----------------------------
# Lookup
# ----------------------------

class LookupFailure(HarnessError, KeyError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnknownContractError(LookupFailure):
    pass


class UnknownMethodError(LookupFailure):
    pass
