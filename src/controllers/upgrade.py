"""
Gating of rolling upgrades across the StatefulSets of a cluster.

StatefulSets roll their own pods; the operator only decides when a changed
template may be written. A StatefulSet that is already rolling may always be
updated again, which is how a bad template gets reverted. Any other
StatefulSet starts rolling only once the whole fleet has rolled out, and at
most one starts per pass.
"""

import logging
from typing import Sequence

import kopf
from kubernetes import client

from .k8s import KubeClient
from .sset import any_version_matches, rollout_complete, rolling
from .version import parse_version

logger = logging.getLogger(__name__)


class RolloutGate:
    """Allows one new StatefulSet rollout while the fleet is fully rolled out."""

    def __init__(self, kube: KubeClient, statefulsets: Sequence[client.V1StatefulSet]):
        self.pending = rolling(statefulsets)
        self.open = not self.pending and rollout_complete(kube, statefulsets)
        self.deferred = []

    def allows(self, name: str) -> bool:
        """Whether the StatefulSet called name may be updated now; records it otherwise."""
        if name in self.pending or self.open:
            return True
        if name not in self.deferred:
            self.deferred.append(name)
        return False

    def close(self) -> None:
        self.open = False


def check_downgrade(statefulsets: Sequence[client.V1StatefulSet], desired_version: str) -> None:
    """Refuse to run a version older than one any StatefulSet already runs."""
    try:
        desired = parse_version(desired_version)
    except ValueError as e:
        raise kopf.PermanentError(str(e)) from e
    if any_version_matches(statefulsets, lambda v: v > desired):
        raise kopf.PermanentError(f"downgrade to version {desired_version} is not supported")
