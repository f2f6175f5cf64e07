"""
Expected StatefulSets and Services for the node sets of a SearchCluster.

Each entry of spec.nodeSets becomes one StatefulSet plus one headless Service
named after it, so pods resolve as <pod>.<statefulset>.<namespace>.
"""

import copy
import hashlib
import json
from dataclasses import asdict
from typing import Any, Dict, List, Mapping

from kubernetes import client

from . import label
from .k8s import merge_owner_references
from .services import HTTP_PORT, TRANSPORT_PORT, http_scheme
from .sset import ordinal_pod_names

DATA_VOLUME = "data"
DATA_PATH = "/usr/share/search/data"


def statefulset_name(cluster_name: str, node_set_name: str) -> str:
    return f"{cluster_name}-{node_set_name}"


def transport_service_name(cluster_name: str) -> str:
    return f"{cluster_name}-transport"


def compute_config_hash(
    version: str,
    image: str,
    config: Mapping[str, Any],
    roles: label.NodeRoles,
    scheme: str
) -> str:
    """Compute a hash of the node configuration to roll pods on changes."""
    payload = {
        "version": version,
        "image": image,
        "config": config,
        "roles": asdict(roles),
        "scheme": scheme
    }
    config_json = json.dumps(payload, sort_keys=True)
    return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def template_hash(statefulset: client.V1StatefulSet) -> str:
    """Hash of the StatefulSet spec as built by the operator.

    Compared instead of the live spec, which the API server fills with defaults.
    """
    spec = client.ApiClient().sanitize_for_serialization(statefulset.spec)
    spec_json = json.dumps(spec, sort_keys=True)
    return hashlib.sha256(spec_json.encode()).hexdigest()[:16]


def node_role_names(roles: label.NodeRoles) -> str:
    return ",".join(name for name in ('master', 'data', 'ingest', 'ml') if getattr(roles, name))


def initial_master_nodes(cluster: Mapping[str, Any]) -> List[str]:
    """Pod names of every master-eligible node, used to bootstrap the cluster."""
    cluster_name = cluster['metadata']['name']
    names = []
    for node_set in cluster['spec'].get('nodeSets') or []:
        if not label.NodeRoles.from_spec(node_set.get('roles')).master:
            continue
        sset_name = statefulset_name(cluster_name, node_set['name'])
        names.extend(ordinal_pod_names(sset_name, node_set.get('count', 1)))
    return names


def new_statefulset(
    cluster: Mapping[str, Any],
    node_set: Mapping[str, Any],
    default_image: str
) -> client.V1StatefulSet:
    meta = cluster['metadata']
    spec = cluster['spec']
    cluster_name = meta['name']
    namespace = meta['namespace']

    name = statefulset_name(cluster_name, node_set['name'])
    version = spec['version']
    image = spec.get('image') or f"{default_image}:{version}"
    roles = label.NodeRoles.from_spec(node_set.get('roles'))
    scheme = http_scheme(spec)
    node_config = node_set.get('config') or {}
    config_hash = compute_config_hash(version, image, node_config, roles, scheme)

    res = node_set.get('resources') or {}
    requests = res.get('requests', {})
    limits = res.get('limits', {})

    env = [
        client.V1EnvVar(
            name="node.name",
            value_from=client.V1EnvVarSource(
                field_ref=client.V1ObjectFieldSelector(field_path="metadata.name")
            )
        ),
        client.V1EnvVar(name="cluster.name", value=cluster_name),
        client.V1EnvVar(name="node.roles", value=node_role_names(roles)),
        client.V1EnvVar(name="discovery.seed_hosts", value=transport_service_name(cluster_name)),
        client.V1EnvVar(
            name="cluster.initial_master_nodes",
            value=",".join(initial_master_nodes(cluster))
        ),
        client.V1EnvVar(
            name="xpack.security.http.ssl.enabled",
            value="true" if scheme == "https" else "false"
        ),
    ]
    for key, value in sorted(node_config.items()):
        env.append(client.V1EnvVar(name=key, value=str(value)))

    sset_labels = label.new_statefulset_labels(cluster_name, name)

    statefulset = client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=dict(sset_labels)
        ),
        spec=client.V1StatefulSetSpec(
            replicas=node_set.get('count', 1),
            service_name=name,
            pod_management_policy="Parallel",
            update_strategy=client.V1StatefulSetUpdateStrategy(type="RollingUpdate"),
            selector=client.V1LabelSelector(match_labels=dict(sset_labels)),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(
                    labels=label.new_pod_labels(
                        cluster_name, name, version, roles, config_hash, scheme
                    )
                ),
                spec=client.V1PodSpec(
                    containers=[
                        client.V1Container(
                            name="search",
                            image=image,
                            env=env,
                            ports=[
                                client.V1ContainerPort(container_port=HTTP_PORT, name="http"),
                                client.V1ContainerPort(container_port=TRANSPORT_PORT, name="transport"),
                            ],
                            volume_mounts=[
                                client.V1VolumeMount(name=DATA_VOLUME, mount_path=DATA_PATH)
                            ],
                            resources=client.V1ResourceRequirements(
                                requests={
                                    "cpu": str(requests.get('cpu', '500m')),
                                    "memory": str(requests.get('memory', '2Gi'))
                                },
                                limits={
                                    "cpu": str(limits.get('cpu', '2')),
                                    "memory": str(limits.get('memory', '2Gi'))
                                }
                            ),
                            readiness_probe=client.V1Probe(
                                tcp_socket=client.V1TCPSocketAction(port=HTTP_PORT),
                                initial_delay_seconds=10,
                                period_seconds=5
                            )
                        )
                    ]
                )
            ),
            volume_claim_templates=[
                client.V1PersistentVolumeClaim(
                    metadata=client.V1ObjectMeta(name=DATA_VOLUME, labels=dict(sset_labels)),
                    spec=client.V1PersistentVolumeClaimSpec(
                        access_modes=["ReadWriteOnce"],
                        resources=client.V1VolumeResourceRequirements(
                            requests={"storage": node_set.get('storage', '1Gi')}
                        )
                    )
                )
            ]
        )
    )
    statefulset.metadata.labels[label.TEMPLATE_HASH_LABEL] = template_hash(statefulset)
    return statefulset


def new_headless_service(statefulset: client.V1StatefulSet) -> client.V1Service:
    """Headless service giving each pod of statefulset a stable DNS name."""
    labels = statefulset.spec.selector.match_labels
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=statefulset.metadata.name,
            namespace=statefulset.metadata.namespace,
            labels=dict(labels)
        ),
        spec=client.V1ServiceSpec(
            cluster_ip="None",
            publish_not_ready_addresses=True,
            selector=dict(labels),
            ports=[
                client.V1ServicePort(name="http", protocol="TCP", port=HTTP_PORT, target_port=HTTP_PORT)
            ]
        )
    )


def new_transport_service(cluster: Mapping[str, Any]) -> client.V1Service:
    """Headless service every node uses to discover the others."""
    cluster_name = cluster['metadata']['name']
    labels = label.new_labels(cluster_name)
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=transport_service_name(cluster_name),
            namespace=cluster['metadata']['namespace'],
            labels=dict(labels)
        ),
        spec=client.V1ServiceSpec(
            cluster_ip="None",
            publish_not_ready_addresses=True,
            selector=dict(labels),
            ports=[
                client.V1ServicePort(
                    name="transport", protocol="TCP", port=TRANSPORT_PORT, target_port=TRANSPORT_PORT
                )
            ]
        )
    )


def statefulset_needs_update(expected: client.V1StatefulSet,
                             reconciled: client.V1StatefulSet) -> bool:
    live = (reconciled.metadata.labels or {}).get(label.TEMPLATE_HASH_LABEL)
    return live != expected.metadata.labels[label.TEMPLATE_HASH_LABEL]


def update_reconciled_statefulset(expected: client.V1StatefulSet,
                                  reconciled: client.V1StatefulSet) -> None:
    """Apply the expected spec, keeping the live volume claim templates which cannot change."""
    labels: Dict[str, str] = dict(reconciled.metadata.labels or {})
    labels.update(expected.metadata.labels)
    reconciled.metadata.labels = labels
    reconciled.metadata.owner_references = merge_owner_references(
        reconciled.metadata.owner_references, expected.metadata.owner_references
    )
    claims = reconciled.spec.volume_claim_templates
    reconciled.spec = copy.deepcopy(expected.spec)
    reconciled.spec.volume_claim_templates = claims
