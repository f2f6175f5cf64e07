"""
Label conventions for SearchCluster resources.

Labels are the only link between a cluster, its StatefulSets and their Pods:
every relation below is a selector over these keys, recomputed from the live
objects on each query.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from kubernetes import client

from .version import parse_version

PREFIX = "searchstack.io"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "searchstack.io-operator"
TYPE_LABEL = "common.k8s.searchstack.io/type"
TYPE = "search"

CLUSTER_NAME_LABEL = f"{PREFIX}/cluster-name"
VERSION_LABEL = f"{PREFIX}/version"
STATEFULSET_NAME_LABEL = f"{PREFIX}/statefulset-name"
CONFIG_HASH_LABEL = f"{PREFIX}/config-hash"
TEMPLATE_HASH_LABEL = f"{PREFIX}/template-hash"
HTTP_SCHEME_LABEL = f"{PREFIX}/http-scheme"

# Set by the StatefulSet controller on every pod it creates
REVISION_LABEL = "controller-revision-hash"


def has_label(key: str, value: str, labels: Optional[Mapping[str, str]]) -> bool:
    return labels is not None and labels.get(key) == value


def set_label(key: str, value: str, labels: Dict[str, str]) -> None:
    labels[key] = value


class TrueFalseLabel(str):
    """A label whose value is "true" or "false"."""

    def has_value(self, value: bool, labels: Optional[Mapping[str, str]]) -> bool:
        return has_label(self, str(value).lower(), labels)

    def set(self, value: bool, labels: Dict[str, str]) -> None:
        set_label(self, str(value).lower(), labels)


NODE_MASTER_LABEL = TrueFalseLabel(f"{PREFIX}/node-master")
NODE_DATA_LABEL = TrueFalseLabel(f"{PREFIX}/node-data")
NODE_INGEST_LABEL = TrueFalseLabel(f"{PREFIX}/node-ingest")
NODE_ML_LABEL = TrueFalseLabel(f"{PREFIX}/node-ml")


@dataclass
class NodeRoles:
    master: bool = True
    data: bool = True
    ingest: bool = True
    ml: bool = True

    @classmethod
    def from_spec(cls, roles: Optional[Mapping[str, bool]]) -> "NodeRoles":
        roles = roles or {}
        return cls(
            master=bool(roles.get('master', True)),
            data=bool(roles.get('data', True)),
            ingest=bool(roles.get('ingest', True)),
            ml=bool(roles.get('ml', True)),
        )


def new_labels(cluster_name: str) -> Dict[str, str]:
    """Labels shared by every resource of a cluster."""
    return {
        MANAGED_BY_LABEL: MANAGED_BY,
        CLUSTER_NAME_LABEL: cluster_name,
        TYPE_LABEL: TYPE,
    }


def new_statefulset_labels(cluster_name: str, sset_name: str) -> Dict[str, str]:
    labels = new_labels(cluster_name)
    labels[STATEFULSET_NAME_LABEL] = sset_name
    return labels


def new_pod_labels(
    cluster_name: str,
    sset_name: str,
    version: str,
    roles: NodeRoles,
    config_hash: str,
    scheme: str
) -> Dict[str, str]:
    """Labels of a pod template; changing any of them rolls the pods."""
    labels = new_statefulset_labels(cluster_name, sset_name)
    labels[VERSION_LABEL] = version

    NODE_MASTER_LABEL.set(roles.master, labels)
    NODE_DATA_LABEL.set(roles.data, labels)
    NODE_INGEST_LABEL.set(roles.ingest, labels)
    NODE_ML_LABEL.set(roles.ml, labels)

    labels[CONFIG_HASH_LABEL] = config_hash
    labels[HTTP_SCHEME_LABEL] = scheme
    return labels


def extract_version(labels: Optional[Mapping[str, str]]):
    """Parse the version label, raising ValueError if it is missing or invalid."""
    value = (labels or {}).get(VERSION_LABEL)
    if value is None:
        raise ValueError(f"version label {VERSION_LABEL} is missing")
    try:
        return parse_version(value)
    except ValueError as e:
        raise ValueError(f"version label {VERSION_LABEL} is invalid: {value}") from e


def is_master_node(pod: client.V1Pod) -> bool:
    return NODE_MASTER_LABEL.has_value(True, pod.metadata.labels)


def is_data_node(pod: client.V1Pod) -> bool:
    return NODE_DATA_LABEL.has_value(True, pod.metadata.labels)


def is_master_node_set(statefulset: client.V1StatefulSet) -> bool:
    return NODE_MASTER_LABEL.has_value(True, statefulset.spec.template.metadata.labels)


def filter_master_node_pods(pods: List[client.V1Pod]) -> List[client.V1Pod]:
    return [pod for pod in pods if is_master_node(pod)]


def to_selector(labels: Mapping[str, str]) -> str:
    """Equality-based label selector string for the given labels."""
    return ",".join(f"{k}={v}" for k, v in labels.items())


def selector_for_cluster(cluster_name: str) -> str:
    return to_selector({CLUSTER_NAME_LABEL: cluster_name})


def cluster_from_resource_labels(metadata: client.V1ObjectMeta) -> Tuple[str, Optional[str], bool]:
    """Return (namespace, cluster name, found) for a resource carrying the cluster label.

    The cluster is assumed to live in the resource's namespace.
    """
    name = (metadata.labels or {}).get(CLUSTER_NAME_LABEL)
    return metadata.namespace, name, name is not None
