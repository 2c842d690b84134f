#!/usr/bin/env python3

from typing import NamedTuple, Optional, Tuple

import logging
import os

from netmon.errors import StartupError
from netmon.peers import REFRESH_EVERY_CYCLE, REFRESH_POLICIES
from netmon.sweep import DEFAULT_MAX_WORKERS

logger = logging.getLogger(__name__)

PEER_SOURCES = ("pxctl", "k8s", "static")

INTERFACE = os.environ.get("NETMON_INTERFACE", "")
FREQUENCY_SEC = float(os.environ.get("NETMON_FREQUENCY", 3))
LOCAL_IP = os.environ.get("NETMON_LOCAL_IP", "")
PROBE_TIMEOUT_SEC = float(os.environ.get("NETMON_PROBE_TIMEOUT", 5))
# a sweep never runs longer than this, whatever the probe timeout says
CYCLE_DEADLINE_SEC = float(os.environ.get("NETMON_CYCLE_DEADLINE", 5 * 60))
PEER_SOURCE = os.environ.get("NETMON_PEER_SOURCE", "pxctl")
REFRESH = os.environ.get("NETMON_REFRESH", REFRESH_EVERY_CYCLE)
MAX_WORKERS = int(os.environ.get("NETMON_MAX_WORKERS", DEFAULT_MAX_WORKERS))
LOG_FILE = os.environ.get("NETMON_LOG_FILE", "")


class MonitorConfig(NamedTuple):
    interface: str
    frequency: float = FREQUENCY_SEC
    local_ip: Optional[str] = None
    probe_timeout: float = PROBE_TIMEOUT_SEC
    cycle_deadline: float = CYCLE_DEADLINE_SEC
    peer_source: str = PEER_SOURCE
    peers: Tuple[str, ...] = ()
    refresh: str = REFRESH
    max_workers: int = MAX_WORKERS

    def validate(self, require_interface=True):
        problems = []
        if require_interface and not self.interface:
            problems.append("an interface is required")
        if self.frequency < 0:
            problems.append(f"frequency must not be negative, got {self.frequency}")
        if self.probe_timeout <= 0:
            problems.append(f"probe timeout must be positive, got {self.probe_timeout}")
        if self.cycle_deadline <= 0:
            problems.append(
                f"cycle deadline must be positive, got {self.cycle_deadline}"
            )
        if self.max_workers < 1:
            problems.append(f"max workers must be at least 1, got {self.max_workers}")
        if self.peer_source not in PEER_SOURCES:
            problems.append(f"unknown peer source {self.peer_source!r}")
        if self.peer_source == "static" and not self.peers:
            problems.append("the static peer source needs --peers")
        if self.refresh not in REFRESH_POLICIES:
            problems.append(f"unknown refresh policy {self.refresh!r}")
        if problems:
            raise StartupError("InvalidConfiguration", "; ".join(problems))

        if self.probe_timeout > self.cycle_deadline:
            logger.warning(
                f"Probe timeout {self.probe_timeout}s exceeds the cycle deadline "
                f"{self.cycle_deadline}s; probes are cancelled at the deadline"
            )
        return self


def split_peers(value):
    if not value:
        return ()
    return tuple(p.strip() for p in value.replace(" ", ",").split(",") if p.strip())


def setup_args(parser):
    parser.add_argument(
        "--interface",
        default=INTERFACE,
        help="interface to run ping from",
    )
    parser.add_argument(
        "--frequency",
        type=float,
        default=FREQUENCY_SEC,
        help="seconds to sleep between the end of one sweep and the next",
    )
    parser.add_argument(
        "--ip",
        default=LOCAL_IP,
        help="this node's ip (default: first address of `hostname -I`)",
    )
    parser.add_argument(
        "--probe-timeout",
        type=float,
        default=PROBE_TIMEOUT_SEC,
        help="seconds to wait for a single ping reply",
    )
    parser.add_argument(
        "--cycle-deadline",
        type=float,
        default=CYCLE_DEADLINE_SEC,
        help="upper bound in seconds on one full sweep",
    )
    parser.add_argument(
        "--peer-source",
        choices=PEER_SOURCES,
        default=PEER_SOURCE,
        help="where to get the list of cluster nodes",
    )
    parser.add_argument(
        "--peers",
        default="",
        help="comma separated node addresses for --peer-source static",
    )
    parser.add_argument(
        "--refresh",
        choices=REFRESH_POLICIES,
        default=REFRESH,
        help="refetch the node list every sweep or only at startup",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=MAX_WORKERS,
        help="maximum concurrent pings per sweep",
    )


def from_args(args, require_interface=True) -> MonitorConfig:
    return MonitorConfig(
        interface=args.interface,
        frequency=args.frequency,
        local_ip=args.ip or None,
        probe_timeout=args.probe_timeout,
        cycle_deadline=args.cycle_deadline,
        peer_source=args.peer_source,
        peers=split_peers(args.peers),
        refresh=args.refresh,
        max_workers=args.max_workers,
    ).validate(require_interface)
