#!/usr/bin/env python3

from typing import Iterable, Optional, Tuple

import json
import logging
import os

from netmon.errors import (
    CalledProcessError,
    MembershipError,
    StartupError,
    TimeoutExpired,
)
from netmon.utils import bash

logger = logging.getLogger(__name__)

PXCTL_BIN = os.environ.get("NETMON_PXCTL_BIN", "/opt/pwx/bin/pxctl")

REFRESH_EVERY_CYCLE = "every-cycle"
REFRESH_ONCE = "once"
REFRESH_POLICIES = (REFRESH_EVERY_CYCLE, REFRESH_ONCE)


class PeerSource:
    name = "unknown"

    def peers(self) -> Tuple[str, ...]:
        raise NotImplementedError


class StaticPeerSource(PeerSource):
    name = "static"

    def __init__(self, addresses: Iterable[str]):
        self.addresses = tuple(a.strip() for a in addresses if a and a.strip())

    def peers(self):
        return self.addresses


def parse_pxctl_status(raw: str) -> Tuple[str, ...]:
    # ex (trimmed):
    # {
    #   "cluster": {
    #     "Nodes": [
    #       {"Id": "...", "DataIp": "10.0.0.1", "MgmtIp": "10.0.0.1", ...},
    #       {"Id": "...", "DataIp": "10.0.0.2", "MgmtIp": "10.0.0.2", ...}
    #     ]
    #   }
    # }
    try:
        status = json.loads(raw)
    except ValueError as e:
        raise MembershipError(f"Failed to parse JSON output: {e}", source="pxctl")
    try:
        nodes = status["cluster"]["Nodes"]
    except (KeyError, TypeError):
        raise MembershipError("No cluster.Nodes in pxctl status", source="pxctl")
    if not isinstance(nodes, list):
        raise MembershipError("cluster.Nodes is not a list", source="pxctl")
    return tuple(n["DataIp"] for n in nodes if isinstance(n, dict) and n.get("DataIp"))


class PxctlPeerSource(PeerSource):
    name = "pxctl"

    def __init__(self, binary: str = PXCTL_BIN):
        self.binary = binary

    def peers(self):
        try:
            raw = bash(f"{self.binary} status -j")
        except (CalledProcessError, TimeoutExpired, OSError, UnicodeDecodeError) as e:
            raise MembershipError(
                f"Failed to execute pxctl status command: {e}", source=self.name
            )
        return parse_pxctl_status(raw)


class KubernetesPeerSource(PeerSource):
    name = "k8s"

    def __init__(self, address_type: str = "InternalIP", label_selector: str = None):
        self.address_type = address_type
        self.label_selector = label_selector

    def peers(self):
        # avoid importing the kubernetes client unless asked to
        import netmon.k8s as k8s

        try:
            nodes = k8s.list_nodes(label_selector=self.label_selector)
        except Exception as e:
            raise MembershipError(f"Failed to list nodes: {e}", source=self.name)
        if nodes is None:
            raise MembershipError("k8s client not installed", source=self.name)

        addresses = []
        for node in nodes:
            address = k8s.node_address(node, self.address_type)
            if address is None:
                logger.warning(
                    f"Node {node.metadata.name} has no {self.address_type} address"
                )
                continue
            addresses.append(address)
        return tuple(addresses)


def get_local_ip() -> str:
    """Best-effort guess: the first address printed by ``hostname -I``.

    This may not be the address of the probing interface; pass ``--ip``
    in production.
    """
    try:
        out = bash("hostname -I")
    except (CalledProcessError, TimeoutExpired, OSError) as e:
        raise StartupError(
            "LocalAddressUnknown", f"Failed to execute hostname command: {e}"
        )
    ips = out.split()
    if not ips:
        raise StartupError(
            "LocalAddressUnknown", "No IP address returned by hostname command"
        )
    return ips[0]


def exclude_self(peers: Iterable[str], local_ip: str) -> Tuple[str, ...]:
    return tuple(p for p in peers if p != local_ip)


class MembershipCache:
    """Current peer list plus the last one that was fetched successfully.

    With ``refresh="once"`` the source is only asked at startup. With
    ``refresh="every-cycle"`` it is asked before each sweep and a failed
    fetch falls back to the last good snapshot.
    """

    def __init__(self, source: PeerSource, refresh: str = REFRESH_EVERY_CYCLE):
        if refresh not in REFRESH_POLICIES:
            raise ValueError(f"Unknown refresh policy {refresh!r}")
        self.source = source
        self.refresh = refresh
        self.last_known: Optional[Tuple[str, ...]] = None

    def _fetch(self):
        try:
            peers = tuple(self.source.peers())
        except MembershipError:
            raise
        except Exception as e:
            raise MembershipError(
                f"{type(e).__name__}: {e}", source=self.source.name
            ) from e
        self.last_known = peers
        return peers

    def startup(self):
        try:
            peers = self._fetch()
        except MembershipError as e:
            raise StartupError(
                "MembershipUnavailable", f"Could not get peers from {self.source.name}: {e}"
            )
        logger.info(f"Found {len(peers)} nodes from {self.source.name}")
        return peers

    def current(self):
        """Returns ``(peers, error)``. ``error`` is set when the fetch failed
        and ``peers`` is the last known snapshot."""
        if self.last_known is None:
            # startup() was skipped; this is still the first fetch
            return self.startup(), None
        if self.refresh == REFRESH_ONCE:
            return self.last_known, None

        try:
            previous = self.last_known
            peers = self._fetch()
        except MembershipError as e:
            logger.warning(
                f"Membership fetch from {self.source.name} failed, "
                f"reusing last known {len(self.last_known)} nodes: {e}"
            )
            return self.last_known, e
        if peers != previous:
            logger.info(f"Peer set changed: {len(previous)} -> {len(peers)} nodes")
        return peers, None
