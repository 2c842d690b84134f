#!/usr/bin/env python3

from multiprocessing.pool import ThreadPool
from typing import Optional, Sequence

import enum
import logging
import threading
import time

from netmon.peers import exclude_self
from netmon.probe import CANCELLED, ERROR, Failure, ProbeExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 64
# how often the collector looks at the stop event while waiting
COLLECT_POLL_SEC = 0.05


class CycleState(enum.Enum):
    IDLE = "idle"
    FANNING_OUT = "fanning-out"
    COLLECTING = "collecting"
    DONE = "done"


class ProbeCounter:
    """Live, peak and total probe counts, shared across cycles."""

    def __init__(self):
        self._lock = threading.Lock()
        self.live = 0
        self.peak = 0
        self.total = 0

    def __enter__(self):
        with self._lock:
            self.live += 1
            self.total += 1
            self.peak = max(self.peak, self.live)
        return self

    def __exit__(self, *exc):
        with self._lock:
            self.live -= 1
        return False


class CycleResult:
    def __init__(self, number: int, peers: Sequence[str], local_ip: str):
        self.number = number
        self.peers = tuple(peers)
        self.local_ip = local_ip
        self.outcomes = []
        self.membership_error = None
        self.deadline_hit = False
        self.started = time.monotonic()
        self.finished = None

    @property
    def successes(self):
        return [o for o in self.outcomes if o.ok]

    @property
    def failures(self):
        return [o for o in self.outcomes if not o.ok]

    @property
    def duration(self):
        end = self.finished if self.finished is not None else time.monotonic()
        return end - self.started

    def summary(self):
        return (
            f"Cycle {self.number}: {len(self.successes)}/{len(self.outcomes)} "
            f"nodes reachable, {len(self.failures)} failed in {self.duration:.2f}s"
        )


class SweepCycle:
    """One round of probes, one per non-local peer.

    The cycle owns a cancel event and a thread pool. Both are torn down
    before ``run`` returns, and every target ends up with exactly one
    outcome: either the probe's own result or a cancelled failure recorded
    when the deadline (or ``stop``) fires first. The cycle deadline wins
    over the per-probe timeout when the two disagree.

    Executors must honour the cancel event, otherwise teardown waits for
    them.
    """

    def __init__(
        self,
        executor: ProbeExecutor,
        probe_timeout: float,
        deadline: float,
        max_workers: int = DEFAULT_MAX_WORKERS,
        number: int = 0,
        counter: Optional[ProbeCounter] = None,
    ):
        self.executor = executor
        self.probe_timeout = probe_timeout
        self.deadline = deadline
        self.max_workers = max(1, max_workers or DEFAULT_MAX_WORKERS)
        self.number = number
        self.counter = counter or ProbeCounter()
        self.state = CycleState.IDLE
        self.cancel = threading.Event()
        self._all_done = threading.Event()
        self._lock = threading.Lock()
        self._slots = []
        self._pending = 0

    def _record(self, result, slot, outcome):
        with self._lock:
            if self._slots[slot] is not None:
                return False
            self._slots[slot] = outcome
            result.outcomes.append(outcome)
            self._pending -= 1
            if self._pending == 0:
                self._all_done.set()
        return True

    def _probe(self, result, slot, target):
        if self.cancel.is_set():
            # queued behind the worker limit and never started
            return
        with self.counter:
            try:
                outcome = self.executor.probe(target, self.probe_timeout, self.cancel)
            except Exception as e:
                logger.exception(f"Probe of {target} raised")
                outcome = Failure(target, ERROR, f"{type(e).__name__}: {e}")
        if not self._record(result, slot, outcome):
            logger.debug(f"Dropping late outcome for {target}: {outcome}")

    def _collect(self, result, stop):
        deadline_at = result.started + self.deadline
        while not self._all_done.is_set():
            remaining = deadline_at - time.monotonic()
            if remaining <= 0:
                result.deadline_hit = True
                return f"cycle deadline of {self.deadline}s elapsed"
            if stop is not None and stop.is_set():
                return "monitor is stopping"
            self._all_done.wait(min(COLLECT_POLL_SEC, remaining))
        return None

    def _fill_cancelled(self, result, targets, why):
        cancelled = 0
        for slot, target in enumerate(targets):
            if self._record(result, slot, Failure(target, CANCELLED, why)):
                cancelled += 1
        if cancelled:
            logger.warning(f"Cancelled {cancelled} pending probes: {why}")

    def run(self, peers: Sequence[str], local_ip: str, stop: threading.Event = None):
        if self.state is not CycleState.IDLE:
            raise RuntimeError(f"Cycle {self.number} already ran")
        result = CycleResult(self.number, peers, local_ip)

        self.state = CycleState.FANNING_OUT
        targets = exclude_self(result.peers, local_ip)
        if len(targets) != len(result.peers):
            logger.debug(f"skipping local node {local_ip}")
        self._slots = [None] * len(targets)
        self._pending = len(targets)
        if not targets:
            logger.info(f"Cycle {self.number}: no peers to probe")
            self.state = CycleState.DONE
            result.finished = time.monotonic()
            return result

        why = "cycle torn down early"
        pool = ThreadPool(processes=min(len(targets), self.max_workers))
        try:
            for slot, target in enumerate(targets):
                pool.apply_async(self._probe, (result, slot, target))
            self.state = CycleState.COLLECTING
            why = self._collect(result, stop)
        finally:
            self.cancel.set()
            if why is not None:
                self._fill_cancelled(result, targets, why)
            pool.close()
            pool.join()
            self.state = CycleState.DONE
            result.finished = time.monotonic()
        return result
