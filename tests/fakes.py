"""
Stand-ins for the probe executor and the membership source
"""

import threading
import time

from netmon.errors import MembershipError
from netmon.peers import PeerSource
from netmon.probe import CANCELLED, UNREACHABLE, Failure, ProbeExecutor, Success


class FakeProbe(ProbeExecutor):
    def __init__(self, hang=(), fail=(), raise_on=(), delay=0.0):
        self.hang = set(hang)
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def probe(self, target, timeout, cancel):
        with self._lock:
            self.calls.append(target)
        if target in self.hang:
            cancel.wait(30)
            return Failure(target, CANCELLED, "cancelled before a reply")
        if target in self.raise_on:
            raise RuntimeError("boom")
        if self.delay:
            time.sleep(self.delay)
        if target in self.fail:
            return Failure(target, UNREACHABLE, "exit status 1: 100% packet loss")
        return Success(
            target, f"64 bytes from {target}: icmp_seq=1 ttl=64 time=0.2 ms", 0.2
        )


class ScriptedSource(PeerSource):
    """Returns ``sets[i]`` on call ``i`` (the last one once they run out),
    raising on any call number listed in ``fail_on``."""

    name = "scripted"

    def __init__(self, sets, fail_on=()):
        self.sets = [tuple(s) for s in sets]
        self.fail_on = set(fail_on)
        self.calls = 0

    def peers(self):
        self.calls += 1
        if self.calls in self.fail_on:
            raise MembershipError(f"pxctl exploded on call {self.calls}", source=self.name)
        return self.sets[min(self.calls, len(self.sets)) - 1]


class BrokenOutputSource(ScriptedSource):
    """Like ScriptedSource, but the listed calls fail the way undecodable
    command output does rather than with a MembershipError."""

    def __init__(self, sets, garbled_on=()):
        super().__init__(sets)
        self.garbled_on = set(garbled_on)

    def peers(self):
        if self.calls + 1 in self.garbled_on:
            self.calls += 1
            raise UnicodeDecodeError("utf-8", b"\xff\xfe garbage", 0, 1, "invalid start byte")
        return super().peers()
