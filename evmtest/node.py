"""
evmtest/node.py

Launches the disposable local node (anvil by default) a Session talks to.

One process per Session, bound to a loopback port, thrown away on close.
Chain state never outlives the test run: the process is also torn down when
its NodeProcess is garbage collected or the interpreter exits, so a Runner
that was never closed does not leave an orphaned node behind.

When output relaying is on, the node runs without --silent and its stdout is
kept in a pipe. take_output() returns whatever it printed since the last
call (console.log lines, mined transaction summaries) minus the per-request
RPC method names.
"""

from __future__ import annotations

import os
import re
import shlex
import socket
import subprocess
import weakref

from evmtest.config import HarnessConfig
from evmtest.errors import BackendUnavailableError

STOP_GRACE_S = 5.0
READ_CHUNK = 65536

# anvil echoes every RPC method it serves on a line of its own.
_RPC_METHOD_LINE = re.compile(r"^(eth|net|web3|anvil|evm|debug|hardhat|txpool|trace|ots)_\w+$")


def free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return int(s.getsockname()[1])


def node_argv(config: HarnessConfig, port: int) -> list[str]:
    """anvil command line for the given config."""
    argv = shlex.split(config.node_command) + [
        "--host", config.node_host,
        "--port", str(port),
        "--chain-id", str(config.chain_id),
    ]
    if not config.relay_node_output:
        argv.append("--silent")
    if config.gas_limit is not None:
        argv += ["--gas-limit", str(config.gas_limit)]
    if config.disable_code_size_limit:
        argv.append("--disable-code-size-limit")
    return argv


def _shutdown(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.terminate()
        try:
            proc.wait(timeout=STOP_GRACE_S)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
    for stream in (proc.stdout, proc.stderr):
        if stream is not None:
            stream.close()


class NodeProcess:
    def __init__(self, proc: subprocess.Popen, url: str) -> None:
        self.proc = proc
        self.url = url
        self._partial = b""
        # Runs on stop(), on garbage collection, or at interpreter exit; once.
        self._finalizer = weakref.finalize(self, _shutdown, proc)
        if proc.stdout is not None:
            os.set_blocking(proc.stdout.fileno(), False)

    @classmethod
    def launch(cls, config: HarnessConfig) -> "NodeProcess":
        port = config.node_port or free_port(config.node_host)
        argv = node_argv(config, port)
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if config.relay_node_output else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise BackendUnavailableError(f"Could not start node {argv[0]!r}: {e}") from e

        print(f"Started node: {' '.join(argv)} (pid {proc.pid})")
        return cls(proc, f"http://{config.node_host}:{port}")

    @property
    def stopped(self) -> bool:
        return not self._finalizer.alive

    def exited(self) -> int | None:
        """Exit code if the process has died, else None."""
        return self.proc.poll()

    def stderr_text(self) -> str:
        """Whatever the process wrote to stderr. Only call once it has exited."""
        if self.proc.stderr is None or self.proc.stderr.closed:
            return ""
        return self.proc.stderr.read().decode(errors="replace")

    def take_output(self) -> list[str]:
        """Complete stdout lines printed since the last call, without blocking."""
        stdout = self.proc.stdout
        if stdout is None or stdout.closed:
            return []

        data = self._partial
        while True:
            try:
                chunk = os.read(stdout.fileno(), READ_CHUNK)
            except BlockingIOError:
                break
            if not chunk:
                break
            data += chunk

        *lines, self._partial = data.split(b"\n")
        out = []
        for raw in lines:
            line = raw.decode(errors="replace").rstrip()
            if line.strip() and not _RPC_METHOD_LINE.match(line.strip()):
                out.append(line)
        return out

    def stop(self) -> None:
        """Terminate the process (kill after a grace period). Idempotent."""
        self._finalizer()
