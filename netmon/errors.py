#!/usr/bin/env python3

from subprocess import CalledProcessError, TimeoutExpired

__all__ = [
    "MonitorError",
    "StartupError",
    "MembershipError",
    "CalledProcessError",
    "TimeoutExpired",
]


class MonitorError(Exception):
    def __init__(self, reason: str, message: str):
        self.reason = reason
        self.message = message
        super().__init__(reason)

    def __str__(self):
        return f"{self.reason}: {self.message}"


class StartupError(MonitorError):
    """Nothing sensible can be monitored. The process should exit."""


class MembershipError(MonitorError):
    """The peer list could not be fetched.

    Fatal on the first fetch, reported and survived on later ones.
    """

    def __init__(self, message: str, source: str = None):
        self.source = source
        super().__init__("MembershipFetchFailure", message)
