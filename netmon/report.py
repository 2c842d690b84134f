#!/usr/bin/env python3

import logging
import queue
import threading

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 16


class ReportSink:
    def submit(self, result):
        raise NotImplementedError

    def close(self):
        pass


class LogSink(ReportSink):
    def __init__(self, log: logging.Logger = None):
        self.log = log or logger

    def submit(self, result):
        if result.membership_error is not None:
            self.log.warning(
                f"Cycle {result.number} used the last known peer set: "
                f"{result.membership_error}"
            )
        for outcome in result.outcomes:
            if outcome.ok:
                rtt = "n/a" if outcome.rtt_ms is None else f"{outcome.rtt_ms}ms"
                self.log.info(f"Ping ok on node {outcome.peer} (rtt {rtt})")
                self.log.debug(outcome.output.rstrip())
            else:
                self.log.error(
                    f"Ping failed on node {outcome.peer}: "
                    f"{outcome.reason} ({outcome.detail})"
                )
        if result.failures:
            self.log.warning(result.summary())
        else:
            self.log.info(result.summary())


class MemorySink(ReportSink):
    def __init__(self):
        self.results = []

    def submit(self, result):
        self.results.append(result)


class QueueSink(ReportSink):
    """Hands results to ``inner`` on a background thread.

    ``submit`` never blocks: when the queue is full the oldest waiting
    result is dropped.
    """

    _CLOSE = object()

    def __init__(self, inner: ReportSink, maxsize: int = DEFAULT_QUEUE_SIZE):
        self.inner = inner
        self.dropped = 0
        self._closed = False
        self._queue = queue.Queue(maxsize=maxsize)
        self._thread = threading.Thread(
            target=self._drain, name="netmon-report", daemon=True
        )
        self._thread.start()

    def _drain(self):
        while True:
            item = self._queue.get()
            try:
                if item is self._CLOSE:
                    return
                self.inner.submit(item)
            except Exception:
                logger.exception("Report sink failed, dropping one cycle result")
            finally:
                self._queue.task_done()

    def submit(self, result):
        if self._closed:
            raise RuntimeError("QueueSink is closed")
        while True:
            try:
                self._queue.put_nowait(result)
                return
            except queue.Full:
                pass
            try:
                stale = self._queue.get_nowait()
            except queue.Empty:
                continue
            self._queue.task_done()
            self.dropped += 1
            logger.warning(f"Report queue full, dropped result of cycle {stale.number}")

    def flush(self):
        self._queue.join()

    def close(self, timeout: float = 10.0):
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put(self._CLOSE, timeout=timeout)
        except queue.Full:
            logger.warning(
                f"Report queue still full after {timeout}s, "
                f"abandoning {self._queue.qsize()} undelivered results"
            )
        else:
            self._thread.join(timeout)
        self.inner.close()
