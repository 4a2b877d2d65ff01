"""
evmtest/chain.py

The execution session: one connection to one disposable node for the life of
a Runner.

- Launch anvil (or attach to EVMTEST_RPC_URL) and wait, bounded, for it
- Use Hardhat/anvil account #0 as the funded sender (LOCAL ONLY)
- deploy(bytecode, args) -> contract address
- call(address, selector, args) -> raw return bytes
- Print gas used and the node's console.log output after every deploy and
  call, reverted ones included

Failure modes are kept apart because tests assert on them:
- CallRevertedError / DeploymentError: the node executed and said no
- TransportError: the connection itself broke; the session is dead after it

Nothing is retried here. web3's own request retries are switched off too.
"""

from __future__ import annotations

import time
from typing import Any, Mapping

from eth_account import Account
from eth_utils import decode_hex, is_hex, to_checksum_address
from requests.exceptions import RequestException
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from evmtest.codec import decode_revert
from evmtest.config import HarnessConfig
from evmtest.errors import (
    BackendUnavailableError,
    CallRevertedError,
    ConfigError,
    DeploymentError,
    TransportError,
)
from evmtest.node import NodeProcess

POLL_INTERVAL_S = 0.1

# Errors that mean "the wire is gone", as opposed to "the node refused".
TRANSPORT_ERRORS = (RequestException, OSError, TimeExhausted)


def _error_message(e: Exception) -> str:
    msg = getattr(e, "message", None)
    return msg if isinstance(msg, str) and msg else str(e)


def revert_payload(e: Exception) -> bytes:
    """Raw revert data attached to a web3 error, or b"" if there is none."""
    data = getattr(e, "data", None)
    if isinstance(data, Mapping):
        data = data.get("data")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and is_hex(data):
        try:
            return decode_hex(data)
        except ValueError:
            return b""
    return b""


def revert_reason(message: str, payload: bytes) -> str | None:
    reason = decode_revert(payload) if payload else None
    if reason is None and "execution reverted:" in message:
        reason = message.split("execution reverted:", 1)[1].strip() or None
    return reason


def print_gas(label: str, gas_used: int | None) -> None:
    print(f"Gas used {label}: {'n/a (reverted)' if gas_used is None else gas_used}")


def print_logs(label: str, lines: list[str]) -> None:
    """Frame the node output (console.log lines) produced by one call."""
    print(f"=========== Start Logs {label} ===========")
    for line in lines:
        print(line)
    print(f"=========== End Logs {label} ===========")


class Session:
    def __init__(
        self,
        w3: Web3,
        account: Any,
        config: HarnessConfig,
        node: NodeProcess | None = None,
    ) -> None:
        self.w3 = w3
        self.account = account
        self.config = config
        self.node = node
        self._broken: str | None = None
        self._closed = False

    # ----------------------------
    # Lifecycle
    # ----------------------------

    @classmethod
    def start(cls, config: HarnessConfig) -> "Session":
        """
        Attach to config.rpc_url, or launch a fresh node, and wait until it
        answers. Raises BackendUnavailableError after startup_timeout_s.
        """
        try:
            account = Account.from_key(config.private_key)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid EVMTEST_PRIVATE_KEY: {e}") from e

        node = None
        url = config.rpc_url
        if url is None:
            node = NodeProcess.launch(config)
            url = node.url

        try:
            w3 = Web3(Web3.HTTPProvider(url, exception_retry_configuration=None))
            cls._wait_until_connected(url, config.startup_timeout_s, node)

            try:
                balance = w3.eth.get_balance(account.address)
            except TRANSPORT_ERRORS + (Web3Exception,) as e:
                raise BackendUnavailableError(f"Node at {url} did not answer eth_getBalance: {e}") from e
            if balance == 0:
                raise BackendUnavailableError(f"Default account {account.address} has no funds on {url}")
            if node is not None:
                # Startup banner and the requests above.
                node.take_output()
        except Exception:
            if node is not None:
                node.stop()
            raise

        print(f"Connected to {url} as {account.address}")
        return cls(w3, account, config, node)

    @staticmethod
    def _wait_until_connected(url: str, timeout_s: float, node: NodeProcess | None) -> None:
        """
        Poll until the node answers. Each probe gets its own request timeout,
        capped by what is left of timeout_s, so an endpoint that accepts the
        connection and never replies cannot hold startup past the deadline.
        """
        deadline = time.monotonic() + timeout_s
        while True:
            remaining = max(deadline - time.monotonic(), POLL_INTERVAL_S)
            probe = Web3(
                Web3.HTTPProvider(url, request_kwargs={"timeout": remaining}, exception_retry_configuration=None)
            )
            if node is not None and node.exited() is not None:
                raise BackendUnavailableError(
                    f"Node exited with code {node.exited()} before accepting connections:\n{node.stderr_text()}"
                )
            if probe.is_connected():
                return
            if time.monotonic() >= deadline:
                raise BackendUnavailableError(f"No backend reachable at {url} within {timeout_s}s")
            time.sleep(POLL_INTERVAL_S)

    def close(self) -> None:
        """Discard the backend. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self.node is not None:
            self.node.stop()
            print("Stopped node")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def usable(self) -> bool:
        return not self._closed and self._broken is None

    def _guard(self) -> None:
        if self._closed:
            raise TransportError("Session is closed")
        if self._broken is not None:
            raise TransportError(f"Session unusable after transport failure: {self._broken}")

    def _transport_failure(self, e: Exception) -> TransportError:
        self._broken = str(e) or type(e).__name__
        return TransportError(f"Backend connection failed: {e}")

    # ----------------------------
    # Transactions
    # ----------------------------

    def _build_and_send(self, tx: dict[str, Any]) -> str:
        """
        Sign and broadcast a transaction from the session account.

        Uses EIP-1559 fee fields when the node reports baseFeePerGas and falls
        back to legacy gasPrice otherwise. Gas is estimated last, after the fee
        fields are present.
        """
        tx.setdefault("nonce", self.w3.eth.get_transaction_count(self.account.address))
        tx.setdefault("chainId", self.w3.eth.chain_id)

        latest_block = self.w3.eth.get_block("latest")
        base_fee = latest_block.get("baseFeePerGas")

        if base_fee is None:
            tx.setdefault("gasPrice", self.w3.eth.gas_price)
        else:
            try:
                priority = self.w3.eth.max_priority_fee
            except Web3Exception:
                # Not every node implements eth_maxPriorityFeePerGas.
                priority = self.w3.to_wei(1, "gwei")
            tx.setdefault("maxPriorityFeePerGas", int(priority))
            tx.setdefault("maxFeePerGas", int(base_fee * 2 + priority))
            tx.setdefault("type", 2)
            tx.pop("gasPrice", None)

        if "gas" not in tx:
            tx["gas"] = self.w3.eth.estimate_gas(tx)

        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def _report(self, label: str, gas_used: int | None) -> None:
        """Gas used (when print_gas is on) and whatever the node printed meanwhile."""
        lines = self.node.take_output() if self.node is not None else []
        if self.config.print_gas:
            print_gas(label, gas_used)
        if lines:
            print_logs(label, lines)

    def wait_receipt(self, tx_hash: str) -> Any:
        return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.config.receipt_timeout_s)

    def deploy(self, bytecode: bytes, constructor_args: bytes = b"", value: int = 0) -> str:
        """
        Submit a deployment and block until it is mined. Returns the
        checksummed contract address.
        """
        self._guard()
        tx: dict[str, Any] = {
            "from": self.account.address,
            "data": "0x" + (bytes(bytecode) + bytes(constructor_args)).hex(),
            "value": int(value),
        }

        try:
            tx_hash = self._build_and_send(tx)
            rcpt = self.wait_receipt(tx_hash)
        except ContractLogicError as e:
            self._report("deploy", None)
            raise DeploymentError(f"Deployment reverted: {_error_message(e)}", revert_payload(e)) from e
        except TRANSPORT_ERRORS as e:
            raise self._transport_failure(e) from e
        except Web3Exception as e:
            # Node-side refusal: out of gas, code size, insufficient funds ...
            self._report("deploy", None)
            raise DeploymentError(f"Deployment failed: {_error_message(e)}", revert_payload(e)) from e

        self._report("deploy", rcpt.gasUsed)

        if rcpt.status != 1 or not rcpt.get("contractAddress"):
            raise DeploymentError(f"Deployment reverted (tx {tx_hash})")
        return to_checksum_address(rcpt.contractAddress)

    def call(
        self,
        address: str,
        selector: bytes,
        args: bytes = b"",
        read_only: bool = True,
        value: int = 0,
        label: str | None = None,
    ) -> bytes:
        """
        Invoke a method and return its raw output bytes.

        Read-only methods are a single eth_call. State-mutating methods are
        simulated with eth_call first (that is where the return data and any
        revert payload come from) and then mined; a mined status of 0 is a
        revert as well.
        """
        self._guard()
        label = label or "0x" + bytes(selector).hex()
        tx: dict[str, Any] = {
            "from": self.account.address,
            "to": to_checksum_address(address),
            "data": "0x" + (bytes(selector) + bytes(args)).hex(),
        }
        if value:
            tx["value"] = int(value)

        rcpt = None
        try:
            output = bytes(self.w3.eth.call(tx))
            if read_only:
                # Nothing is mined, so the only gas figure is an estimate.
                gas_used = self.w3.eth.estimate_gas(tx) if self.config.print_gas else None
            else:
                tx_hash = self._build_and_send(dict(tx))
                rcpt = self.wait_receipt(tx_hash)
                gas_used = rcpt.gasUsed
        except ContractLogicError as e:
            self._report(label, None)
            message = _error_message(e)
            payload = revert_payload(e)
            raise CallRevertedError(
                f"{label} reverted: {message}", payload, revert_reason(message, payload)
            ) from e
        except TRANSPORT_ERRORS as e:
            raise self._transport_failure(e) from e
        except Web3Exception as e:
            # Halts without revert data (out of gas, invalid opcode).
            self._report(label, None)
            message = _error_message(e)
            raise CallRevertedError(f"{label} failed: {message}", revert_payload(e)) from e

        self._report(label, gas_used)

        if rcpt is not None and rcpt.status != 1:
            raise CallRevertedError(f"{label} reverted when mined (tx {tx_hash})")
        return output
