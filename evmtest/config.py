"""
evmtest/config.py

Loads harness configuration from the environment and <project_root>/.env.

Project root resolution:
- explicit argument
- EVMTEST_PROJECT_ROOT
- one directory above the current working directory (the usual layout is a
  tests/ directory sitting inside the contracts project)

Everything else is optional; README.md lists the variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from evmtest.errors import ConfigError

# Hardhat default private key #0 (LOCAL ONLY). anvil derives the same account
# from its default mnemonic and funds it at startup.
HARDHAT_DEFAULT_PRIVKEY0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

DEFAULT_BUILD_DIR = "out"
DEFAULT_CHAIN_ID = 31337

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _opt(name: str) -> str | None:
    """Fetch an optional environment variable."""
    v = os.getenv(name)
    return v.strip() if v and v.strip() else None


def _env_int(name: str, default: int | None) -> int | None:
    """Read an int env var with a default."""
    v = _opt(name)
    if v is None:
        return default
    try:
        return int(v, 0)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {v!r}") from None


def _env_float(name: str, default: float) -> float:
    """Read a float env var with a default."""
    v = _opt(name)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {v!r}") from None


def _env_bool(name: str, default: bool) -> bool:
    v = _opt(name)
    if v is None:
        return default
    if v.lower() in _TRUE:
        return True
    if v.lower() in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {v!r}")


def resolve_project_root(project_root: str | Path | None = None) -> Path:
    """Pick the project root: argument, then EVMTEST_PROJECT_ROOT, then cwd/.."""
    if project_root is not None:
        return Path(project_root).resolve()
    from_env = _opt("EVMTEST_PROJECT_ROOT")
    if from_env:
        return Path(from_env).resolve()
    return Path.cwd().resolve().parent


@dataclass(frozen=True)
class HarnessConfig:
    project_root: Path
    build_dir: str = DEFAULT_BUILD_DIR
    build_command: str | None = None

    # Backend: attach to rpc_url, or launch node_command on a loopback port.
    rpc_url: str | None = None
    node_command: str = "anvil"
    node_host: str = "127.0.0.1"
    node_port: int = 0
    startup_timeout_s: float = 10.0
    receipt_timeout_s: float = 600.0

    # Chain / account context
    chain_id: int = DEFAULT_CHAIN_ID
    gas_limit: int | None = None
    disable_code_size_limit: bool = True
    private_key: str = HARDHAT_DEFAULT_PRIVKEY0

    print_gas: bool = True
    # Relay the launched node's own output (console.log lines) after each call.
    relay_node_output: bool = True

    @property
    def build_path(self) -> Path:
        return self.project_root / self.build_dir


def load_config(project_root: str | Path | None = None) -> HarnessConfig:
    """
    Resolve the project root, load its .env (existing environment wins) and
    build a HarnessConfig.
    """
    root = resolve_project_root(project_root)
    load_dotenv(dotenv_path=root / ".env", override=False)

    return HarnessConfig(
        project_root=root,
        build_dir=_opt("EVMTEST_BUILD_DIR") or DEFAULT_BUILD_DIR,
        build_command=_opt("EVMTEST_BUILD_COMMAND"),

        rpc_url=_opt("EVMTEST_RPC_URL"),
        node_command=_opt("EVMTEST_NODE_COMMAND") or "anvil",
        node_host=_opt("EVMTEST_NODE_HOST") or "127.0.0.1",
        node_port=_env_int("EVMTEST_NODE_PORT", 0),
        startup_timeout_s=_env_float("EVMTEST_STARTUP_TIMEOUT", 10.0),
        receipt_timeout_s=_env_float("EVMTEST_RECEIPT_TIMEOUT", 600.0),

        chain_id=_env_int("EVMTEST_CHAIN_ID", DEFAULT_CHAIN_ID),
        gas_limit=_env_int("EVMTEST_GAS_LIMIT", None),
        disable_code_size_limit=_env_bool("EVMTEST_DISABLE_CODE_SIZE_LIMIT", True),
        private_key=_opt("EVMTEST_PRIVATE_KEY") or HARDHAT_DEFAULT_PRIVKEY0,

        print_gas=_env_bool("EVMTEST_PRINT_GAS", True),
        relay_node_output=_env_bool("EVMTEST_NODE_OUTPUT", True),
    )
