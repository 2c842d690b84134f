#!/usr/bin/env python3

from typing import Optional

import logging
import threading

from netmon.errors import StartupError
from netmon.peers import MembershipCache
from netmon.probe import ProbeExecutor
from netmon.report import ReportSink
from netmon.sweep import DEFAULT_MAX_WORKERS, ProbeCounter, SweepCycle

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs sweeps back to back, sleeping ``cadence`` seconds after each.

    Cycles never overlap. Each one builds and tears down its own pool and
    cancel event, so nothing but the membership cache and the probe
    counter lives from one cycle to the next.
    """

    def __init__(
        self,
        membership: MembershipCache,
        local_ip: str,
        executor: ProbeExecutor,
        sink: ReportSink,
        cadence: float,
        probe_timeout: float,
        cycle_deadline: float,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.membership = membership
        self.local_ip = local_ip
        self.executor = executor
        self.sink = sink
        self.cadence = cadence
        self.probe_timeout = probe_timeout
        self.cycle_deadline = cycle_deadline
        self.max_workers = max_workers
        self.counter = ProbeCounter()
        self.cycles = 0

    def start(self):
        if not self.local_ip:
            raise StartupError(
                "LocalAddressUnknown", "Refusing to run without this node's address"
            )
        peers = self.membership.startup()
        if self.local_ip not in peers:
            logger.warning(
                f"Local address {self.local_ip} is not among the {len(peers)} "
                "cluster nodes, nothing will be skipped"
            )

    def run_once(self, stop: threading.Event = None):
        self.cycles += 1
        peers, error = self.membership.current()
        cycle = SweepCycle(
            self.executor,
            self.probe_timeout,
            self.cycle_deadline,
            max_workers=self.max_workers,
            number=self.cycles,
            counter=self.counter,
        )
        result = cycle.run(peers, self.local_ip, stop=stop)
        result.membership_error = error
        self.sink.submit(result)
        return result

    def run(self, stop: threading.Event = None, max_cycles: Optional[int] = None):
        stop = stop or threading.Event()
        self.start()
        logger.info(
            f"Monitoring from {self.local_ip} with {self.executor!r} "
            f"every {self.cadence}s (deadline {self.cycle_deadline}s)"
        )
        while not stop.is_set():
            self.run_once(stop)
            if max_cycles is not None and self.cycles >= max_cycles:
                break
            logger.debug(f"Sleeping {self.cadence}s...")
            if stop.wait(self.cadence):
                break
        logger.info(f"Stopped after {self.cycles} cycles")
