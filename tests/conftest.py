"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from evmtest.config import HarnessConfig
from tests.helpers import (
    ADDER_ABI,
    CONFIG_VARS,
    COUNTER_ABI,
    REVERTER_ABI,
    FakeSession,
    write_foundry_artifact,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv then delenv so anything load_dotenv writes is undone afterwards.
    for name in CONFIG_VARS:
        monkeypatch.setenv(name, "x")
        monkeypatch.delenv(name)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A contracts project with Adder, Counter and Reverter built into out/."""
    out = tmp_path / "out"
    write_foundry_artifact(out, "Adder", "Adder", ADDER_ABI)
    write_foundry_artifact(out, "Counter", "Counter", COUNTER_ABI)
    write_foundry_artifact(out, "Reverter", "Reverter", REVERTER_ABI)
    return tmp_path


@pytest.fixture
def config(project: Path) -> HarnessConfig:
    return HarnessConfig(project_root=project, print_gas=False)


@pytest.fixture
def fake_session(monkeypatch) -> FakeSession:
    session = FakeSession()
    monkeypatch.setattr("evmtest.runner.Session.start", classmethod(lambda cls, config: session))
    return session
