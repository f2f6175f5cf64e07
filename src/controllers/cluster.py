"""
Cluster reconciliation - brings every resource of one SearchCluster in line
with its spec and reports the observed state.

Services are always reconciled. StatefulSets are created freely but updated
one at a time, through a RolloutGate, so a template change rolls node set by
node set.
"""

import logging
from typing import Any, Dict, List, Mapping

import kopf
from kubernetes import client

from . import label
from .config import Settings
from .k8s import KubeClient
from .nodesets import (
    new_headless_service,
    new_statefulset,
    new_transport_service,
    statefulset_name,
    statefulset_needs_update,
    update_reconciled_statefulset,
)
from .reconciler import Params, reconcile_resource
from .services import new_external_service, reconcile_service, resolve_base_url
from .sset import (
    find_by_name,
    get_actual_pods,
    pod_reconciliation_done_for_sset,
    replicas,
    retrieve_actual_statefulsets,
    rolling,
)
from .upgrade import RolloutGate, check_downgrade

logger = logging.getLogger(__name__)


def reconcile_statefulset(
    kube: KubeClient,
    expected: client.V1StatefulSet,
    owner: Any,
    gate: RolloutGate
) -> client.V1StatefulSet:
    reconciled = client.V1StatefulSet()
    reconcile_resource(Params(
        client=kube,
        owner=owner,
        expected=expected,
        reconciled=reconciled,
        needs_update=lambda: (
            statefulset_needs_update(expected, reconciled)
            and gate.allows(expected.metadata.name)
        ),
        update_reconciled=lambda: update_reconciled_statefulset(expected, reconciled),
        post_update=gate.close
    ))
    return reconciled


def is_pod_ready(pod: client.V1Pod) -> bool:
    if pod.status is None:
        return False
    for condition in pod.status.conditions or []:
        if condition.type == "Ready":
            return condition.status == "True"
    return False


def _node_set_status(name: str, sset_name: str, statefulsets: List[client.V1StatefulSet]) -> dict:
    live, found = find_by_name(statefulsets, sset_name)
    entry = {"name": name, "statefulSet": sset_name, "exists": found}
    if found:
        status = live.status
        entry["master"] = label.is_master_node_set(live)
        entry["replicas"] = replicas(live)
        entry["readyReplicas"] = (status.ready_replicas or 0) if status else 0
        entry["currentRevision"] = status.current_revision if status else None
        entry["updateRevision"] = status.update_revision if status else None
    return entry


def reconcile_cluster(kube: KubeClient, cluster: Mapping[str, Any], settings: Settings) -> Dict[str, Any]:
    """Reconcile all resources of cluster and return its new status fields."""
    meta = cluster['metadata']
    name = meta['name']
    namespace = meta['namespace']
    spec = cluster.get('spec') or {}

    if not spec.get('version'):
        raise kopf.PermanentError("spec.version is required")

    actual = retrieve_actual_statefulsets(kube, namespace, name)
    check_downgrade(actual, spec['version'])
    gate = RolloutGate(kube, actual)

    reconcile_service(kube, new_external_service(cluster), owner=cluster)
    reconcile_service(kube, new_transport_service(cluster), owner=cluster)

    node_sets = spec.get('nodeSets') or []
    for node_set in node_sets:
        expected = new_statefulset(cluster, node_set, settings.default_image)
        reconcile_service(kube, new_headless_service(expected), owner=cluster)
        reconcile_statefulset(kube, expected, cluster, gate)

    if gate.deferred:
        logger.info(f"Deferring updates of {gate.deferred} for {namespace}/{name} until rollout completes")

    # Re-read the fleet: the writes above changed it
    actual = retrieve_actual_statefulsets(kube, namespace, name)
    pods = get_actual_pods(kube, actual)
    complete = all(pod_reconciliation_done_for_sset(pods, s) for s in actual)
    pending = rolling(actual)
    ready_pods = [pod for pod in pods if is_pod_ready(pod)]

    ready = complete and not pending and not gate.deferred
    return {
        "phase": "Ready" if ready else "ApplyingChanges",
        "url": resolve_base_url(cluster, pods),
        "version": spec['version'],
        "availableNodes": len(ready_pods),
        "availableMasterNodes": len(label.filter_master_node_pods(ready_pods)),
        "availableDataNodes": sum(1 for pod in ready_pods if label.is_data_node(pod)),
        "pendingUpdates": pending,
        "deferredUpdates": list(gate.deferred),
        "nodeSets": [
            _node_set_status(ns['name'], statefulset_name(name, ns['name']), actual)
            for ns in node_sets
        ],
    }
