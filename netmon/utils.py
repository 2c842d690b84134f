#!/usr/bin/env python3

from typing import Optional

import logging
import socket
import subprocess

logger = logging.getLogger(__name__)

# membership and address lookups must never stall the scheduler
COMMAND_TIMEOUT_SEC = 30


def gethostname():
    return socket.gethostname()


def bash(
    cmd,
    silent_stderr: bool = True,
    timeout: Optional[float] = COMMAND_TIMEOUT_SEC,
):
    stderr = subprocess.DEVNULL if silent_stderr else None
    logger.debug(f"Running command '{cmd}'")
    output = subprocess.check_output(
        cmd, shell=True, stderr=stderr, encoding="utf-8", timeout=timeout
    )
    logger.debug(f"Output from '{cmd}':\n{output}")
    return output


def last_line(text):
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""
