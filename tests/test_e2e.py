"""
End-to-end: compile a small Foundry project, start anvil, deploy and call.

Skipped unless both `forge` and `anvil` are on PATH.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from evmtest.config import HarnessConfig
from evmtest.errors import CallRevertedError, EncodingError, TransportError
from evmtest.runner import Runner

pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(
        shutil.which("forge") is None or shutil.which("anvil") is None,
        reason="forge and anvil are required",
    ),
]

FIXTURES_SOL = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.13;

contract Adder {
    function add(uint256 a, uint256 b) external pure returns (uint256) {
        return a + b;
    }
}

contract Reverter {
    function fail() external pure {
        revert("always fails");
    }
}

contract Counter {
    uint256 public count;
    address public owner;

    constructor(uint256 start, address _owner) {
        count = start;
        owner = _owner;
    }

    function increment() external returns (uint256) {
        count += 1;
        return count;
    }
}
"""

FOUNDRY_TOML = """\
[profile.default]
src = "src"
out = "out"
libs = []
"""


@pytest.fixture(scope="module")
def built_project(tmp_path_factory) -> Path:
    root = tmp_path_factory.mktemp("contracts")
    (root / "src").mkdir()
    (root / "src" / "Fixtures.sol").write_text(FIXTURES_SOL)
    (root / "foundry.toml").write_text(FOUNDRY_TOML)
    return root


@pytest.fixture(scope="module")
def runner(built_project: Path):
    config = HarnessConfig(project_root=built_project, build_command="forge build")
    with Runner(config=config) as runner:
        yield runner


def test_add(runner: Runner) -> None:
    adder = runner.deploy("Adder")

    assert adder.call("add", (2, 3)) == 5


def test_revert_is_an_assertable_outcome(runner: Runner) -> None:
    reverter = runner.deploy("Reverter")

    with pytest.raises(CallRevertedError) as excinfo:
        reverter.call("fail")

    assert excinfo.value.reason == "always fails"
    # Still usable afterwards.
    assert runner.deploy("Adder").call("add", (1, 1)) == 2


def test_state_persists_between_calls(runner: Runner) -> None:
    owner = runner.session.account.address
    counter = runner.deploy("Counter", (7, owner))

    assert counter.call("count") == 7
    assert counter.call("owner") == owner
    assert counter.call("increment") == 8
    assert counter.call("count") == 8


def test_constructor_args_are_validated_first(runner: Runner) -> None:
    with pytest.raises(EncodingError):
        runner.deploy("Counter", (-1, runner.session.account.address))


def test_dead_node_is_a_transport_error(built_project: Path, runner: Runner) -> None:
    # Build output already exists from the module runner; no rebuild.
    with Runner(config=HarnessConfig(project_root=built_project, print_gas=False)) as other:
        adder = other.deploy("Adder")
        other.session.node.stop()

        with pytest.raises(TransportError):
            adder.call("add", (1, 2))
        with pytest.raises(TransportError):
            adder.call("add", (1, 2))
