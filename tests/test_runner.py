"""Runner and ContractHandle tests with a fake execution session."""

from __future__ import annotations

from pathlib import Path

import pytest

from evmtest.abi import parse_type_string
from evmtest.codec import encode
from evmtest.config import HarnessConfig
from evmtest.errors import (
    ArityError,
    BackendUnavailableError,
    CallRevertedError,
    DeploymentError,
    DiscoveryError,
    EncodingError,
    UnknownContractError,
    UnknownMethodError,
)
from evmtest.runner import Runner
from tests.helpers import ADDER_ABI, DEPLOYED, OWNER, write_foundry_artifact


def word(n: int) -> bytes:
    return n.to_bytes(32, "big")


# ----------------------------
# construction
# ----------------------------


def test_construction_discovers_once_and_starts_session(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    assert sorted(runner.contracts) == ["Adder", "Counter", "Reverter"]
    assert runner.session is fake_session
    assert runner.project_root == config.project_root
    with pytest.raises(TypeError):
        runner.contracts["Extra"] = runner.contracts["Adder"]


def test_project_root_argument_overrides_config(tmp_path: Path, project: Path, fake_session) -> None:
    runner = Runner(project, config=HarnessConfig(project_root=tmp_path / "elsewhere"))

    assert runner.project_root == project.resolve()


def test_project_root_inferred_from_cwd(project: Path, fake_session, monkeypatch) -> None:
    (project / "tests").mkdir()
    monkeypatch.chdir(project / "tests")

    runner = Runner()

    assert runner.project_root == project.resolve()
    assert "Adder" in runner.contracts


def test_missing_build_output_aborts_before_session(tmp_path: Path, monkeypatch) -> None:
    started = []
    monkeypatch.setattr("evmtest.runner.Session.start", classmethod(lambda cls, config: started.append(1)))

    with pytest.raises(DiscoveryError):
        Runner(config=HarnessConfig(project_root=tmp_path))

    assert started == []


def test_session_start_failure_propagates(config: HarnessConfig, monkeypatch) -> None:
    def fail(cls, config):
        raise BackendUnavailableError("nothing listening")

    monkeypatch.setattr("evmtest.runner.Session.start", classmethod(fail))

    with pytest.raises(BackendUnavailableError):
        Runner(config=config)


def test_context_manager_closes_session(config: HarnessConfig, fake_session) -> None:
    with Runner(config=config):
        pass

    assert fake_session.closed


# ----------------------------
# deploy
# ----------------------------


def test_deploy_without_constructor(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    adder = runner.deploy("Adder")

    assert adder.address == DEPLOYED
    assert adder.name == "Adder"
    assert fake_session.deploys == [(bytes.fromhex("6080604052"), b"", 0)]


def test_deploy_encodes_constructor_args(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    runner.deploy("Counter", (7, OWNER))

    _, args, _ = fake_session.deploys[0]
    assert args == word(7) + encode([OWNER], [parse_type_string("address")])


def test_deploy_rejects_bad_constructor_args_before_io(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    with pytest.raises(EncodingError) as excinfo:
        runner.deploy("Counter", (-1, OWNER))

    assert excinfo.value.position == "0"
    assert excinfo.value.expected == "uint256"
    assert fake_session.deploys == []


def test_deploy_with_missing_constructor_args(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    with pytest.raises(ArityError):
        runner.deploy("Counter")

    assert fake_session.deploys == []


def test_deploy_unknown_contract(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    with pytest.raises(UnknownContractError) as excinfo:
        runner.deploy("Nope")

    assert "Nope" in str(excinfo.value)
    assert fake_session.deploys == []


def test_deploy_interface_only_artifact(config: HarnessConfig, fake_session) -> None:
    write_foundry_artifact(config.build_path, "IAdder", "IAdder", ADDER_ABI, "0x")
    runner = Runner(config=config)

    with pytest.raises(DeploymentError):
        runner.deploy("IAdder")

    assert fake_session.deploys == []


# ----------------------------
# ContractHandle.call
# ----------------------------


def test_call_add(config: HarnessConfig, fake_session) -> None:
    adder = Runner(config=config).deploy("Adder")
    fake_session.outputs = [word(5)]

    assert adder.call("add", (2, 3)) == 5

    call = fake_session.calls[0]
    assert call["address"] == DEPLOYED
    assert call["selector"] == adder.signature("add").selector
    assert call["args"] == word(2) + word(3)
    assert call["read_only"] is True


def test_call_by_full_signature(config: HarnessConfig, fake_session) -> None:
    adder = Runner(config=config).deploy("Adder")
    fake_session.outputs = [word(9)]

    assert adder.call("add(uint256,uint256)", [4, 5]) == 9


def test_mutating_call_is_not_read_only(config: HarnessConfig, fake_session) -> None:
    counter = Runner(config=config).deploy("Counter", (0, OWNER))
    fake_session.outputs = [word(1)]

    assert counter.call("increment") == 1
    assert fake_session.calls[0]["read_only"] is False


def test_multiple_outputs_come_back_as_tuple(config: HarnessConfig, fake_session) -> None:
    counter = Runner(config=config).deploy("Counter", (0, OWNER))
    fake_session.outputs = [encode([3, OWNER], [parse_type_string("uint256"), parse_type_string("address")])]

    assert counter.call("state") == (3, OWNER)


def test_zero_outputs_skip_decoding(config: HarnessConfig, fake_session) -> None:
    counter = Runner(config=config).deploy("Counter", (0, OWNER))
    # Not valid ABI data; must not be looked at.
    fake_session.outputs = [b"\x01"]

    assert counter.call("reset") == ()


def test_unknown_method_does_not_reach_backend(config: HarnessConfig, fake_session) -> None:
    adder = Runner(config=config).deploy("Adder")

    with pytest.raises(UnknownMethodError):
        adder.call("subtract", (1, 2))

    assert fake_session.calls == []


def test_bad_arguments_do_not_reach_backend(config: HarnessConfig, fake_session) -> None:
    adder = Runner(config=config).deploy("Adder")

    with pytest.raises(ArityError):
        adder.call("add", (1,))
    with pytest.raises(EncodingError):
        adder.call("add", (1, "2"))

    assert fake_session.calls == []


def test_revert_propagates_unchanged(config: HarnessConfig, fake_session) -> None:
    reverter = Runner(config=config).deploy("Reverter")
    err = CallRevertedError("Reverter.fail reverted", b"\x08\xc3\x79\xa0", "always fails")
    fake_session.outputs = [err]

    with pytest.raises(CallRevertedError) as excinfo:
        reverter.call("fail")

    assert excinfo.value is err
    assert excinfo.value.reason == "always fails"


def test_handle_for_existing_address(config: HarnessConfig, fake_session) -> None:
    runner = Runner(config=config)

    handle = runner.at("Adder", DEPLOYED.lower())

    assert handle.address == DEPLOYED
    assert [m.name for m in handle.interface] == ["add"]


def test_bare_argument_is_rejected_before_backend(config: HarnessConfig, fake_session) -> None:
    adder = Runner(config=config).deploy("Adder")

    with pytest.raises(EncodingError):
        adder.call("add", 5)

    assert fake_session.calls == []
