"""
evmtest/runner.py

Top-level entry point for test code.

Construction does, in order:
1) resolve config (project root, build dir, backend settings)
2) run the external build command, if one is configured
3) scan the build output once for artifacts
4) start the execution session

Any failure aborts construction; there is no half-built Runner.

Usage:
  with Runner("path/to/contracts-project") as runner:
      adder = runner.deploy("Adder")
      assert adder.call("add", (2, 3)) == 5
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping, Sequence

from eth_utils import to_checksum_address

from evmtest.artifacts import Artifact, locate_artifacts
from evmtest.build import run_build
from evmtest.chain import Session
from evmtest.codec import encode
from evmtest.config import HarnessConfig, load_config
from evmtest.contract import ContractHandle
from evmtest.errors import DeploymentError, UnknownContractError


class Runner:
    def __init__(
        self,
        project_root: str | Path | None = None,
        config: HarnessConfig | None = None,
    ) -> None:
        if config is None:
            config = load_config(project_root)
        elif project_root is not None:
            config = replace(config, project_root=Path(project_root).resolve())
        self.config = config

        run_build(config)
        self._contracts = locate_artifacts(config.build_path)
        print(f"Loaded {len(self._contracts)} contract artifacts from {config.build_path}")

        self.session = Session.start(config)

    @property
    def project_root(self) -> Path:
        return self.config.project_root

    @property
    def contracts(self) -> Mapping[str, Artifact]:
        """Read-only name -> Artifact mapping, fixed at construction."""
        return self._contracts

    def artifact(self, contract_name: str) -> Artifact:
        try:
            return self._contracts[contract_name]
        except KeyError:
            known = ", ".join(sorted(self._contracts))
            raise UnknownContractError(f"No contract named {contract_name!r}; known: {known}") from None

    def deploy(self, contract_name: str, args: Sequence[Any] = (), value: int = 0) -> ContractHandle:
        """
        Deploy `contract_name` with constructor `args` and return a handle.
        Omitting args is only valid when the constructor takes none.
        """
        artifact = self.artifact(contract_name)
        if not artifact.is_deployable:
            if artifact.unlinked_libraries:
                libs = ", ".join(artifact.unlinked_libraries)
                raise DeploymentError(f"{contract_name} needs unlinked libraries: {libs}")
            raise DeploymentError(f"{contract_name} has no deployable bytecode (interface or abstract contract?)")

        # Validate before touching the node.
        encoded = encode(args, artifact.constructor.inputs)

        address = self.session.deploy(artifact.bytecode, encoded, value=value)
        print(f"Deployed {contract_name} at {address}")
        return ContractHandle(address, artifact, self.session)

    def at(self, contract_name: str, address: str) -> ContractHandle:
        """Handle for an instance of `contract_name` already deployed at `address`."""
        return ContractHandle(to_checksum_address(address), self.artifact(contract_name), self.session)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "Runner":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
