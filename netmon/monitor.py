#!/usr/bin/env python3

import logging
import signal
import sys
import threading

from netmon import config
from netmon.errors import MonitorError, StartupError
from netmon.peers import (
    KubernetesPeerSource,
    MembershipCache,
    PxctlPeerSource,
    StaticPeerSource,
    exclude_self,
    get_local_ip,
)
from netmon.probe import PingProbe
from netmon.report import LogSink, QueueSink
from netmon.scheduler import Scheduler
from netmon.unit import render_unit
from netmon.utils import gethostname

logger = logging.getLogger(__name__)


def setup_args(parser):
    config.setup_args(parser)
    parser.add_argument(
        "-r",
        "--run",
        action="store_true",
        help="Directly run the monitor instead of printing a service unit for it",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit non-zero if any node is unreachable",
    )


def setup_peers_args(parser):
    config.setup_args(parser)


def build_peer_source(cfg):
    if cfg.peer_source == "static":
        return StaticPeerSource(cfg.peers)
    elif cfg.peer_source == "k8s":
        return KubernetesPeerSource()
    return PxctlPeerSource()


def resolve_local_ip(cfg):
    if cfg.local_ip:
        return cfg.local_ip
    local_ip = get_local_ip()
    logger.warning(
        f"No --ip given, guessed {local_ip} from hostname; "
        "it may not be the address of the probing interface"
    )
    return local_ip


def build_scheduler(cfg, sink):
    local_ip = resolve_local_ip(cfg)
    membership = MembershipCache(build_peer_source(cfg), refresh=cfg.refresh)
    return Scheduler(
        membership,
        local_ip,
        PingProbe(cfg.interface),
        sink,
        cadence=cfg.frequency,
        probe_timeout=cfg.probe_timeout,
        cycle_deadline=cfg.cycle_deadline,
        max_workers=cfg.max_workers,
    )


def install_signal_handlers(stop):
    def _handler(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, finishing current sweep")
        stop.set()

    previous = {}
    for signum in (signal.SIGTERM, signal.SIGINT):
        previous[signum] = signal.signal(signum, _handler)
    return previous


def restore_signal_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def verbosity(args):
    for flag in ("silent", "quiet", "verbose"):
        if getattr(args, flag, False):
            return flag
    return None


def run(cfg, once=False):
    stop = threading.Event()
    sink = QueueSink(LogSink())
    previous = install_signal_handlers(stop)
    try:
        scheduler = build_scheduler(cfg, sink)
        if once:
            scheduler.start()
            result = scheduler.run_once(stop)
            return 1 if result.failures else 0
        scheduler.run(stop)
        return 0
    finally:
        restore_signal_handlers(previous)
        sink.close()


def main(args):
    logger.info(f"Set up logging for network monitor on {gethostname()}")
    try:
        cfg = config.from_args(args)
        if not (args.run or args.once):
            print(
                render_unit(
                    cfg,
                    log_file=getattr(args, "log_file", None),
                    verbosity=verbosity(args),
                )
            )
            return 0
        return run(cfg, once=args.once)
    except StartupError as se:
        logger.critical(f"Failed to start: {se} ({se.__class__.__name__})")
        sys.exit(1)
    except MonitorError as me:
        logger.critical(f"Monitor failed: {me} ({me.__class__.__name__})")
        sys.exit(1)
    except Exception:
        logger.exception("Unknown exception")
        sys.exit(240)


def main_peers(args):
    try:
        cfg = config.from_args(args, require_interface=False)
        local_ip = resolve_local_ip(cfg)
        peers = MembershipCache(build_peer_source(cfg)).startup()
    except MonitorError as me:
        logger.critical(f"{me} ({me.__class__.__name__})")
        sys.exit(1)
    print(f"local {local_ip}")
    for peer in peers:
        marker = "" if peer in exclude_self(peers, local_ip) else " (self)"
        print(f"{peer}{marker}")
