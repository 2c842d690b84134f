"""
Report sinks

Usage:
python -m pytest tests/test_report.py
"""

import threading
import time
import unittest

from netmon.errors import MembershipError
from netmon.probe import CANCELLED, Failure, Success
from netmon.report import LogSink, MemorySink, QueueSink
from netmon.sweep import CycleResult


def make_result(number=1, outcomes=(), error=None):
    result = CycleResult(number, ["10.0.0.1", "10.0.0.2", "10.0.0.3"], "10.0.0.2")
    result.outcomes = list(outcomes)
    result.membership_error = error
    result.finished = result.started + 0.25
    return result


class BlockingSink(MemorySink):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.busy = threading.Event()

    def submit(self, result):
        self.busy.set()
        self.release.wait(10)
        super().submit(result)


class ExplodingSink(MemorySink):
    def submit(self, result):
        if result.number == 1:
            raise IOError("disk full")
        super().submit(result)


class TestLogSink(unittest.TestCase):
    def test_mixed_cycle(self):
        result = make_result(
            outcomes=[
                Success("10.0.0.1", "64 bytes from 10.0.0.1: time=0.2 ms\n", 0.2),
                Failure("10.0.0.3", CANCELLED, "cycle deadline of 300s elapsed"),
            ],
            error=MembershipError("Failed to execute pxctl status command"),
        )
        with self.assertLogs("netmon.report", level="DEBUG") as logs:
            LogSink().submit(result)
        output = "\n".join(logs.output)
        assert "Ping ok on node 10.0.0.1 (rtt 0.2ms)" in output
        assert "ERROR:netmon.report:Ping failed on node 10.0.0.3: cancelled" in output
        assert "used the last known peer set" in output
        assert "WARNING:netmon.report:Cycle 1: 1/2 nodes reachable" in output

    def test_clean_cycle_summary_is_info(self):
        result = make_result(outcomes=[Success("10.0.0.1", "", None)])
        with self.assertLogs("netmon.report", level="INFO") as logs:
            LogSink().submit(result)
        assert "rtt n/a" in logs.output[0]
        assert logs.output[-1].startswith("INFO:netmon.report:Cycle 1: 1/1")


class TestQueueSink(unittest.TestCase):
    def test_delivers_in_order(self):
        inner = MemorySink()
        sink = QueueSink(inner)
        results = [make_result(n) for n in range(1, 6)]
        for result in results:
            sink.submit(result)
        sink.close()
        assert inner.results == results

    def test_submit_does_not_block_on_slow_sink(self):
        inner = BlockingSink()
        sink = QueueSink(inner, maxsize=1)
        results = [make_result(n) for n in range(1, 4)]
        start = time.monotonic()
        for result in results:
            sink.submit(result)
        assert time.monotonic() - start < 1
        inner.release.set()
        sink.close()
        assert sink.dropped >= 1
        assert len(inner.results) + sink.dropped == 3
        assert inner.results[-1] is results[-1]

    def test_inner_failure_does_not_stop_delivery(self):
        inner = ExplodingSink()
        sink = QueueSink(inner)
        sink.submit(make_result(1))
        sink.submit(make_result(2))
        sink.close()
        assert [r.number for r in inner.results] == [2]

    def test_close_gives_up_on_stuck_sink(self):
        inner = BlockingSink()
        sink = QueueSink(inner, maxsize=1)
        sink.submit(make_result(1))
        assert inner.busy.wait(5)
        sink.submit(make_result(2))
        start = time.monotonic()
        with self.assertLogs("netmon.report", level="WARNING") as logs:
            sink.close(timeout=0.2)
        assert time.monotonic() - start < 2
        assert "undelivered" in logs.output[-1]
        inner.release.set()

    def test_closed(self):
        sink = QueueSink(MemorySink())
        sink.close()
        sink.close()
        with self.assertRaises(RuntimeError):
            sink.submit(make_result())
