"""
Rollout tracking over the StatefulSets of one SearchCluster.

StatefulSets are matched to their Pods through the statefulset-name label and
to their rollout state through the revision hashes the StatefulSet controller
publishes in status. Nothing here is cached: every query lists live Pods.
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from kubernetes import client

from . import label
from .k8s import POD, STATEFULSET, KubeClient

logger = logging.getLogger(__name__)

VersionPredicate = Callable[[object], bool]


def version_matches(statefulset: client.V1StatefulSet, predicate: VersionPredicate) -> bool:
    """True if the pod template version label satisfies predicate.

    A missing or unparseable label means the set has not converged yet and
    yields False.
    """
    template = statefulset.spec.template if statefulset.spec else None
    labels = template.metadata.labels if template and template.metadata else None
    try:
        version = label.extract_version(labels)
    except ValueError:
        return False
    return bool(predicate(version))


def any_version_matches(statefulsets: Iterable[client.V1StatefulSet],
                        predicate: VersionPredicate) -> bool:
    return any(version_matches(s, predicate) for s in statefulsets)


def _revisions(statefulset: client.V1StatefulSet) -> Tuple[Optional[str], Optional[str]]:
    status = statefulset.status
    if status is None:
        return None, None
    return status.current_revision, status.update_revision


def pending_update(statefulsets: Iterable[client.V1StatefulSet]) -> List[client.V1StatefulSet]:
    """StatefulSets whose pods are not all at the update revision, in input order.

    Sets without an update revision have not been observed by the StatefulSet
    controller yet and are left out.
    """
    pending = []
    for statefulset in statefulsets:
        current, update = _revisions(statefulset)
        if update and update != current:
            pending.append(statefulset)
    return pending


def awaiting_observation(statefulsets: Iterable[client.V1StatefulSet]) -> List[client.V1StatefulSet]:
    """StatefulSets whose latest spec the StatefulSet controller has not processed yet.

    Their revisions in status still describe the previous template.
    """
    waiting = []
    for statefulset in statefulsets:
        generation = statefulset.metadata.generation
        if generation is None:
            continue
        status = statefulset.status
        observed = status.observed_generation if status else None
        if observed is None or observed < generation:
            waiting.append(statefulset)
    return waiting


def rolling(statefulsets: Sequence[client.V1StatefulSet]) -> List[str]:
    """Names of the StatefulSets with a rollout in progress, in input order."""
    names = {s.metadata.name for s in pending_update(statefulsets)}
    names.update(s.metadata.name for s in awaiting_observation(statefulsets))
    return [s.metadata.name for s in statefulsets if s.metadata.name in names]


def find_by_name(statefulsets: Iterable[client.V1StatefulSet],
                 name: str) -> Tuple[Optional[client.V1StatefulSet], bool]:
    for statefulset in statefulsets:
        if statefulset.metadata.name == name:
            return statefulset, True
    return None, False


def replicas(statefulset: client.V1StatefulSet) -> int:
    # The API server defaults spec.replicas to 1
    if statefulset.spec is None or statefulset.spec.replicas is None:
        return 1
    return statefulset.spec.replicas


def ordinal_pod_names(sset_name: str, count: int) -> List[str]:
    return [f"{sset_name}-{i}" for i in range(count)]


def pod_names(statefulset: client.V1StatefulSet) -> List[str]:
    """Names of the pods the StatefulSet controller creates, by ordinal."""
    return ordinal_pod_names(statefulset.metadata.name, replicas(statefulset))


def retrieve_actual_statefulsets(kube: KubeClient, namespace: str,
                                 cluster_name: str) -> List[client.V1StatefulSet]:
    return kube.list(STATEFULSET, namespace, label.selector_for_cluster(cluster_name))


def get_actual_pods_for_statefulset(kube: KubeClient,
                                    statefulset: client.V1StatefulSet) -> List[client.V1Pod]:
    selector = label.to_selector({label.STATEFULSET_NAME_LABEL: statefulset.metadata.name})
    return kube.list(POD, statefulset.metadata.namespace, selector)


def get_actual_pods(kube: KubeClient,
                    statefulsets: Iterable[client.V1StatefulSet]) -> List[client.V1Pod]:
    """All live pods belonging to any of the given StatefulSets, in no set order."""
    pods = []
    for statefulset in statefulsets:
        pods.extend(get_actual_pods_for_statefulset(kube, statefulset))
    return pods


def pod_reconciliation_done_for_sset(pods: Iterable[client.V1Pod],
                                     statefulset: client.V1StatefulSet) -> bool:
    """True if enough pods of statefulset run its current revision.

    Pods of other StatefulSets in the input are ignored. When the set has no
    current revision yet, pods only need to exist.
    """
    name = statefulset.metadata.name
    current, _ = _revisions(statefulset)
    matching = 0
    for pod in pods:
        labels = pod.metadata.labels
        if not label.has_label(label.STATEFULSET_NAME_LABEL, name, labels):
            continue
        if current and not label.has_label(label.REVISION_LABEL, current, labels):
            continue
        matching += 1
    return matching >= replicas(statefulset)


def rollout_complete(kube: KubeClient, statefulsets: Sequence[client.V1StatefulSet]) -> bool:
    """True once every StatefulSet has its replicas running its current revision.

    An empty list is complete: there is nothing to wait for.
    """
    if not statefulsets:
        return True
    pods = get_actual_pods(kube, statefulsets)
    for statefulset in statefulsets:
        if not pod_reconciliation_done_for_sset(pods, statefulset):
            logger.debug(f"StatefulSet {statefulset.metadata.name} has not rolled out yet")
            return False
    return True
