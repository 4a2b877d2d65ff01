"""
evmtest/build.py

Optional external build step, run before artifact discovery when
EVMTEST_BUILD_COMMAND is set (e.g. "forge build"). Without a command the
build output is assumed to exist already.
"""

from __future__ import annotations

import shlex
import subprocess

from evmtest.config import HarnessConfig
from evmtest.errors import BuildError


def run_build(config: HarnessConfig) -> bool:
    """Run the configured build command in the project root. Returns True if it ran."""
    if not config.build_command:
        return False

    cmd = shlex.split(config.build_command)
    print(f"Building contracts: {config.build_command} (in {config.project_root})")
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(config.project_root),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise BuildError(config.build_command, 127, str(e)) from e

    if proc.returncode != 0:
        raise BuildError(config.build_command, proc.returncode, (proc.stdout or "") + (proc.stderr or ""))
    return True
