#!/usr/bin/env python3

from typing import List, NamedTuple, Optional

import logging
import math
import os
import re
import subprocess
import threading
import time

from netmon.utils import last_line

logger = logging.getLogger(__name__)

PING_BIN = os.environ.get("NETMON_PING_BIN", "ping")
# a single round trip, not a stream
PING_COUNT = 1
# how often a running probe looks at its cancel event
POLL_INTERVAL_SEC = 0.05

UNREACHABLE = "unreachable"
TIMEOUT = "timeout"
CANCELLED = "cancelled"
ERROR = "error"
FAILURE_REASONS = (UNREACHABLE, TIMEOUT, CANCELLED, ERROR)

# ex: 64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.215 ms
RTT_RE = re.compile(r"time[=<]\s*([0-9.]+)\s*ms")


class Success(NamedTuple):
    peer: str
    output: str
    rtt_ms: Optional[float] = None

    @property
    def ok(self):
        return True


class Failure(NamedTuple):
    peer: str
    reason: str
    detail: str = ""

    @property
    def ok(self):
        return False


def parse_rtt(output: str) -> Optional[float]:
    match = RTT_RE.search(output or "")
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _reap(proc):
    if proc.poll() is None:
        proc.kill()
    try:
        proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning(f"Child {proc.pid} did not exit after SIGKILL")


class ProbeExecutor:
    """Runs one reachability check against one peer.

    Implementations return a Success or Failure and never raise for a peer
    that is down. Once ``cancel`` is set they must give up promptly and
    release whatever they started.
    """

    def probe(self, target: str, timeout: float, cancel: threading.Event):
        raise NotImplementedError


class CommandProbe(ProbeExecutor):
    """A probe decided by the exit status of a child process."""

    def command(self, target: str, timeout: float) -> List[str]:
        raise NotImplementedError

    def interpret(self, target, returncode, stdout, stderr):
        if returncode == 0:
            return Success(target, stdout, parse_rtt(stdout))
        detail = last_line(stderr) or last_line(stdout) or "no output"
        return Failure(target, UNREACHABLE, f"exit status {returncode}: {detail}")

    def probe(self, target, timeout, cancel):
        argv = self.command(target, timeout)
        logger.debug(f"Running command '{' '.join(argv)}'")
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
            )
        except OSError as e:
            return Failure(target, ERROR, f"could not run {argv[0]}: {e}")

        deadline = time.monotonic() + timeout
        finished = False
        try:
            while True:
                if cancel.is_set():
                    return Failure(target, CANCELLED, "cancelled before a reply")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return Failure(target, TIMEOUT, f"no reply within {timeout}s")
                try:
                    stdout, stderr = proc.communicate(
                        timeout=min(POLL_INTERVAL_SEC, remaining)
                    )
                    finished = True
                    break
                except subprocess.TimeoutExpired:
                    continue
        finally:
            if not finished:
                _reap(proc)

        return self.interpret(target, proc.returncode, stdout, stderr)


class PingProbe(CommandProbe):
    def __init__(self, interface: str, count: int = PING_COUNT, binary: str = PING_BIN):
        self.interface = interface
        self.count = count
        self.binary = binary

    def command(self, target, timeout):
        # ping only takes whole seconds for -W on older iputils
        wait = max(1, int(math.ceil(timeout)))
        return [
            self.binary,
            "-I",
            self.interface,
            "-c",
            str(self.count),
            "-W",
            str(wait),
            target,
        ]

    def interpret(self, target, returncode, stdout, stderr):
        outcome = super().interpret(target, returncode, stdout, stderr)
        # iputils: 1 means no reply, anything else is a local problem
        # such as a bad interface name
        if not outcome.ok and returncode != 1:
            outcome = outcome._replace(reason=ERROR)
        if not outcome.ok:
            logger.debug(f"Ping failed on node {target}: {outcome.detail}")
        return outcome

    def __repr__(self):
        return f"PingProbe(interface={self.interface!r}, count={self.count})"
