"""
Services exposing a SearchCluster and the URL the operator uses to reach it.
"""

import logging
import random
from typing import Any, Dict, List, Mapping

from kubernetes import client

from . import label
from .k8s import ENDPOINTS, KubeClient, has_owner_references, merge_owner_references
from .reconciler import Params, reconcile_resource

logger = logging.getLogger(__name__)

HTTP_PORT = 9200
TRANSPORT_PORT = 9300
GLOBAL_SERVICE_SUFFIX = ".svc"


def http_scheme(spec: Mapping[str, Any]) -> str:
    tls = (spec.get('http') or {}).get('tls') or {}
    return "https" if tls.get('enabled', True) else "http"


def external_service_name(cluster_name: str) -> str:
    return f"{cluster_name}-http"


def external_service_url(cluster: Mapping[str, Any]) -> str:
    meta = cluster['metadata']
    scheme = http_scheme(cluster.get('spec') or {})
    return (
        f"{scheme}://{external_service_name(meta['name'])}.{meta['namespace']}"
        f"{GLOBAL_SERVICE_SUFFIX}:{HTTP_PORT}"
    )


def set_service_defaults(
    service: client.V1Service,
    labels: Dict[str, str],
    selector: Dict[str, str],
    ports: List[client.V1ServicePort]
) -> client.V1Service:
    """Fill in labels, selector and ports the user did not override."""
    if service.metadata.labels is None:
        service.metadata.labels = {}
    for k, v in labels.items():
        service.metadata.labels.setdefault(k, v)
    if not service.spec.selector:
        service.spec.selector = selector
    if not service.spec.ports:
        service.spec.ports = ports
    return service


def new_external_service(cluster: Mapping[str, Any]) -> client.V1Service:
    """The Service users and the operator send HTTP requests to."""
    meta = cluster['metadata']
    spec = cluster.get('spec') or {}
    overrides = (spec.get('http') or {}).get('service') or {}
    meta_override = overrides.get('metadata') or {}
    spec_override = overrides.get('spec') or {}

    service = client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=external_service_name(meta['name']),
            namespace=meta['namespace'],
            labels=dict(meta_override.get('labels') or {}),
            annotations=meta_override.get('annotations')
        ),
        spec=client.V1ServiceSpec(
            type=spec_override.get('type', 'ClusterIP'),
            selector=spec_override.get('selector')
        )
    )

    labels = label.new_labels(meta['name'])
    ports = [
        client.V1ServicePort(
            name=http_scheme(spec),
            protocol="TCP",
            port=HTTP_PORT,
            target_port=HTTP_PORT
        )
    ]
    return set_service_defaults(service, labels, labels, ports)


def _port_key(port: client.V1ServicePort) -> tuple:
    return (port.name, port.protocol or "TCP", port.port, port.target_port or port.port)


def service_needs_update(expected: client.V1Service, reconciled: client.V1Service) -> bool:
    live_labels = reconciled.metadata.labels or {}
    if any(live_labels.get(k) != v for k, v in (expected.metadata.labels or {}).items()):
        return True
    live_annotations = reconciled.metadata.annotations or {}
    if any(live_annotations.get(k) != v for k, v in (expected.metadata.annotations or {}).items()):
        return True
    if not has_owner_references(reconciled.metadata.owner_references, expected.metadata.owner_references):
        return True
    if (expected.spec.type or "ClusterIP") != (reconciled.spec.type or "ClusterIP"):
        return True
    if (expected.spec.selector or {}) != (reconciled.spec.selector or {}):
        return True
    expected_ports = sorted(_port_key(p) for p in expected.spec.ports or [])
    live_ports = sorted(_port_key(p) for p in reconciled.spec.ports or [])
    return expected_ports != live_ports


def update_reconciled_service(expected: client.V1Service, reconciled: client.V1Service) -> None:
    """Apply expected onto the live service, keeping server-assigned fields like clusterIP."""
    labels = dict(reconciled.metadata.labels or {})
    labels.update(expected.metadata.labels or {})
    reconciled.metadata.labels = labels
    if expected.metadata.annotations:
        annotations = dict(reconciled.metadata.annotations or {})
        annotations.update(expected.metadata.annotations)
        reconciled.metadata.annotations = annotations
    reconciled.metadata.owner_references = merge_owner_references(
        reconciled.metadata.owner_references, expected.metadata.owner_references
    )
    reconciled.spec.type = expected.spec.type
    reconciled.spec.selector = expected.spec.selector
    reconciled.spec.ports = expected.spec.ports


def reconcile_service(kube: KubeClient, expected: client.V1Service,
                      owner: Any = None) -> client.V1Service:
    reconciled = client.V1Service()
    reconcile_resource(Params(
        client=kube,
        owner=owner,
        expected=expected,
        reconciled=reconciled,
        needs_update=lambda: service_needs_update(expected, reconciled),
        update_reconciled=lambda: update_reconciled_service(expected, reconciled)
    ))
    return reconciled


def is_service_ready(kube: KubeClient, service: client.V1Service) -> bool:
    """True if the service has at least one ready endpoint."""
    endpoints = kube.get(ENDPOINTS, service.metadata.namespace, service.metadata.name)
    for subset in endpoints.subsets or []:
        if subset.addresses:
            return True
    return False


def resolve_base_url(cluster: Mapping[str, Any], pods: List[client.V1Pod]) -> str:
    """Base URL for requests to the cluster, given its running pods.

    While the HTTP scheme is being toggled, the external service fronts pods
    speaking both schemes, so requests go to a single pod instead. The pod is
    picked at random among those labelled with both their scheme and their
    StatefulSet; steady state always yields the external service URL.
    """
    scheme = http_scheme(cluster.get('spec') or {})
    scheme_change = False
    for pod in pods:
        pod_scheme = (pod.metadata.labels or {}).get(label.HTTP_SCHEME_LABEL)
        if pod_scheme is not None and pod_scheme != scheme:
            scheme_change = True
            break

    if scheme_change:
        candidates = [
            pod for pod in pods
            if label.HTTP_SCHEME_LABEL in (pod.metadata.labels or {})
            and label.STATEFULSET_NAME_LABEL in (pod.metadata.labels or {})
        ]
        if candidates:
            pod = random.choice(candidates)
            labels = pod.metadata.labels
            url = (
                f"{labels[label.HTTP_SCHEME_LABEL]}://{pod.metadata.name}."
                f"{labels[label.STATEFULSET_NAME_LABEL]}.{pod.metadata.namespace}:{HTTP_PORT}"
            )
            logger.info(f"HTTP scheme change in progress, addressing pod directly: {url}")
            return url

    return external_service_url(cluster)
