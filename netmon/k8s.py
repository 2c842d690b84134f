#!/usr/bin/env python3

import logging
import os
import warnings

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_TOKEN = "/var/run/secrets/kubernetes.io/serviceaccount/token"
API_SERVER = os.environ.get("NETMON_K8S_API_SERVER", "https://kubernetes.default.svc")

try:
    from kubernetes import client, config

    DISABLED = False
except ImportError:
    DISABLED = True


def protect(fn):
    def _protected(*args, **kwargs):
        if DISABLED:
            logger.warning("Not continuing, k8s client not installed")
            return
        create_kubernetes_configuration()
        warnings.filterwarnings("ignore", "Unverified HTTPS request")
        return fn(*args, **kwargs)

    return _protected


def create_kubernetes_configuration():
    if not os.path.exists(SERVICE_ACCOUNT_TOKEN):
        # running outside a pod, e.g. straight from systemd on the host
        config.load_kube_config()
        return
    with open(SERVICE_ACCOUNT_TOKEN) as f:
        token = f.read().strip()
    configuration = client.Configuration()
    configuration.host = API_SERVER
    configuration.verify_ssl = False
    configuration.api_key = {"authorization": f"Bearer {token}"}
    client.Configuration.set_default(configuration)


@protect
def list_nodes(label_selector=None):
    v1 = client.CoreV1Api()
    if label_selector:
        return v1.list_node(label_selector=label_selector).items
    return v1.list_node().items


def node_address(node, address_type="InternalIP"):
    for address in node.status.addresses or []:
        if address.type == address_type:
            return address.address
    return None
