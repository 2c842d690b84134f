"""
The monitor subcommand end to end, with pings faked out

Usage:
python -m pytest tests/test_monitor.py
"""

import argparse
import contextlib
import io
import os
import signal
import threading
import time
import unittest
from unittest import mock

from netmon import monitor
from netmon.probe import CANCELLED
from netmon.report import MemorySink

from tests.fakes import FakeProbe

STATIC = ["--peer-source", "static", "--peers", "10.0.0.1,10.0.0.2,10.0.0.3"]


def parse(*argv):
    parser = argparse.ArgumentParser("netmon")
    monitor.setup_args(parser)
    return parser.parse_args(list(argv))


class TestMonitorMain(unittest.TestCase):
    @mock.patch("netmon.monitor.PingProbe")
    def test_once_all_reachable(self, ping_probe):
        ping_probe.return_value = FakeProbe()
        args = parse("--interface", "eth1", "--ip", "10.0.0.2", "--once", *STATIC)
        assert monitor.main(args) == 0
        ping_probe.assert_called_once_with("eth1")

    @mock.patch("netmon.monitor.PingProbe")
    def test_once_with_unreachable_node(self, ping_probe):
        ping_probe.return_value = FakeProbe(fail=["10.0.0.3"])
        args = parse("--interface", "eth1", "--ip", "10.0.0.2", "--once", *STATIC)
        assert monitor.main(args) == 1

    @mock.patch("netmon.monitor.LogSink")
    @mock.patch("netmon.monitor.PingProbe")
    def test_sigterm_during_once_cancels_pings(self, ping_probe, log_sink):
        ping_probe.return_value = FakeProbe(hang=["10.0.0.1", "10.0.0.3"])
        delivered = MemorySink()
        log_sink.return_value = delivered
        original = signal.getsignal(signal.SIGTERM)
        args = parse(
            "--interface", "eth1", "--ip", "10.0.0.2", "--once",
            "--cycle-deadline", "60", *STATIC
        )
        timer = threading.Timer(0.3, os.kill, (os.getpid(), signal.SIGTERM))
        timer.start()
        start = time.monotonic()
        try:
            assert monitor.main(args) == 1
        finally:
            timer.cancel()
        assert time.monotonic() - start < 10
        assert len(delivered.results) == 1
        outcomes = delivered.results[0].outcomes
        assert {o.peer for o in outcomes} == {"10.0.0.1", "10.0.0.3"}
        assert all(o.reason == CANCELLED for o in outcomes)
        assert signal.getsignal(signal.SIGTERM) is original

    def test_unit_carries_log_file_and_verbosity(self):
        args = parse("--interface", "eth1", "--ip", "10.0.0.2", *STATIC)
        args.log_file = "/var/log/netmon/netmon.log"
        args.verbose = True
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            assert monitor.main(args) == 0
        assert "--log-file /var/log/netmon/netmon.log --verbose monitor " in out.getvalue()

    def test_without_run_prints_unit(self):
        args = parse("--interface", "eth1", "--ip", "10.0.0.2", *STATIC)
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            assert monitor.main(args) == 0
        assert "ExecStart=" in out.getvalue()
        assert " -r" in out.getvalue()

    def test_invalid_config_exits(self):
        args = parse("--interface", "", "--once", *STATIC)
        with self.assertRaises(SystemExit) as ctx:
            monitor.main(args)
        assert ctx.exception.code == 1

    @mock.patch("netmon.peers.bash", return_value="")
    def test_unknown_local_address_exits(self, bash):
        args = parse("--interface", "eth1", "--once", *STATIC)
        with self.assertRaises(SystemExit) as ctx:
            monitor.main(args)
        assert ctx.exception.code == 1

    @mock.patch("netmon.monitor.get_local_ip", return_value="10.0.0.2")
    def test_guessed_local_address(self, get_local_ip):
        with self.assertLogs("netmon.monitor", level="WARNING") as logs:
            cfg = monitor.config.MonitorConfig(interface="eth1")
            assert monitor.resolve_local_ip(cfg) == "10.0.0.2"
        assert "guessed 10.0.0.2" in logs.output[0]
