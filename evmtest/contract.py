"""
evmtest/contract.py

ContractHandle: a deployed contract's address plus the interface it was
deployed with. Method names are resolved against the artifact's MethodTable,
arguments are encoded before anything is sent, and results are decoded with
the resolved signature's output types.
"""

from __future__ import annotations

from typing import Any, Sequence

from evmtest.abi import MethodSignature
from evmtest.artifacts import Artifact
from evmtest.chain import Session
from evmtest.codec import decode, encode


class ContractHandle:
    def __init__(self, address: str, artifact: Artifact, session: Session) -> None:
        self._address = address
        self._artifact = artifact
        self._session = session

    @property
    def address(self) -> str:
        return self._address

    @property
    def name(self) -> str:
        return self._artifact.name

    @property
    def artifact(self) -> Artifact:
        return self._artifact

    @property
    def interface(self):
        return self._artifact.interface

    def signature(self, method: str) -> MethodSignature:
        """
        Resolve a method by name ('add') or full signature
        ('add(uint256,uint256)'). Raises UnknownMethodError.
        """
        return self._artifact.methods.resolve(method)

    def call(self, method: str, args: Sequence[Any] = (), value: int = 0) -> Any:
        """
        Call `method` with `args` and return the decoded result:
        - no outputs   -> ()
        - one output   -> the value
        - several      -> tuple of values

        view/pure methods are read with eth_call; anything else is mined.
        CallRevertedError from the node is raised unchanged.
        """
        fn = self.signature(method)
        data = encode(args, fn.inputs)

        raw = self._session.call(
            self._address,
            fn.selector,
            data,
            read_only=fn.is_read_only,
            value=value,
            label=f"{self.name}.{fn.name}",
        )

        if not fn.outputs:
            return ()
        values = decode(raw, fn.outputs)
        if len(values) == 1:
            return values[0]
        return tuple(values)

    def __repr__(self) -> str:
        return f"<ContractHandle {self.name} at {self._address}>"
