"""
evmtest/pytest_plugin.py

pytest integration, registered through the `pytest11` entry point.

Provides a session-scoped `evm_runner` fixture: one Runner (and so one
disposable node) for the whole pytest session, closed at the end. Tests that
share it see each other's chain state; deploy fresh contracts per test when
that matters.

  pytest --evmtest-root path/to/contracts-project
"""

import pytest

from evmtest.runner import Runner


def pytest_addoption(parser):
    group = parser.getgroup("evmtest")
    group.addoption(
        "--evmtest-root",
        action="store",
        default=None,
        help="Contracts project root (default: EVMTEST_PROJECT_ROOT, else the directory above cwd).",
    )


@pytest.fixture(scope="session")
def evm_runner(request):
    runner = Runner(request.config.getoption("evmtest_root"))
    yield runner
    runner.close()
