#!/usr/bin/env python3

import shlex
import shutil
import sys

SERVICE_NAME = "portworx_network_monitor.service"
SERVICE_LOG_FILE = "/var/lib/osd/log/nw_mon_log/nw_mon.log"

UNIT_TEMPLATE = """
[Unit]
Description=portworx network monitor service
After=portworx.service
StartLimitIntervalSec=0s

[Service]
Type=simple
RuntimeMaxSec=1800s
Restart=always
User=root
ExecStart=[[COMMAND]]
TasksMax=200
MemoryMax=60M

[Install]
WantedBy=multi-user.target
"""


def netmon_binary():
    return shutil.which("netmon") or f"{sys.executable} -m netmon"


def monitor_command(config, binary=None, log_file=None, verbosity=None):
    args = ["--log-file", log_file or SERVICE_LOG_FILE]
    if verbosity:
        args.append(f"--{verbosity}")
    args += [
        "monitor",
        "--interface",
        config.interface,
        "--frequency",
        f"{config.frequency:g}",
        "--probe-timeout",
        f"{config.probe_timeout:g}",
        "--cycle-deadline",
        f"{config.cycle_deadline:g}",
        "--peer-source",
        config.peer_source,
        "--refresh",
        config.refresh,
        "--max-workers",
        str(config.max_workers),
    ]
    if config.local_ip:
        args += ["--ip", config.local_ip]
    if config.peers:
        args += ["--peers", ",".join(config.peers)]
    args.append("-r")
    return f"{binary or netmon_binary()} " + " ".join(shlex.quote(a) for a in args)


def render_unit(config, binary=None, log_file=None, verbosity=None):
    """Unit text that re-runs the monitor directly. Installing it is left
    to the operator."""
    command = monitor_command(config, binary, log_file, verbosity)
    return UNIT_TEMPLATE.replace("[[COMMAND]]", command)
