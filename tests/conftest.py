"""Pytest configuration and fixtures for the controller tests."""

import copy

import pytest
from kubernetes import client

from controllers import label
from controllers.errors import ConflictError, NotFoundError
from controllers.k8s import default_scheme, object_identity


class FakeKubeClient:
    """In-memory KubeClient that assigns resource versions and records every call."""

    def __init__(self, objects=()):
        self.scheme = default_scheme()
        self.store = {}
        self.calls = []
        # verb -> exception raised instead of performing the call
        self.fail = {}
        self._resource_version = 0
        for obj in objects:
            self._put(obj)

    def _key(self, kind, namespace, name):
        return (kind.kind, namespace, name)

    def _put(self, obj):
        kind, namespace, name = object_identity(obj, self.scheme)
        key = self._key(kind, namespace, name)
        self._resource_version += 1
        stored = copy.deepcopy(obj)
        stored.metadata.resource_version = str(self._resource_version)
        previous = self.store.get(key)
        # generation advances on every write
        stored.metadata.generation = ((previous.metadata.generation or 0) if previous else 0) + 1
        self.store[key] = stored
        return copy.deepcopy(stored)

    def _record(self, verb, kind, namespace, name=None):
        self.calls.append((verb, kind.kind, namespace, name))
        if verb in self.fail:
            raise self.fail[verb]

    @property
    def writes(self):
        return [c for c in self.calls if c[0] in ("create", "update", "delete")]

    def get(self, kind, namespace, name):
        self._record("get", kind, namespace, name)
        key = self._key(kind, namespace, name)
        if key not in self.store:
            raise NotFoundError(f"get {kind.kind} {namespace}/{name}: not found", status=404)
        return copy.deepcopy(self.store[key])

    def create(self, obj):
        kind, namespace, name = object_identity(obj, self.scheme)
        self._record("create", kind, namespace, name)
        if self._key(kind, namespace, name) in self.store:
            raise ConflictError(f"create {kind.kind} {namespace}/{name}: conflict", status=409)
        return self._put(obj)

    def update(self, obj):
        kind, namespace, name = object_identity(obj, self.scheme)
        self._record("update", kind, namespace, name)
        key = self._key(kind, namespace, name)
        if key not in self.store:
            raise NotFoundError(f"update {kind.kind} {namespace}/{name}: not found", status=404)
        if obj.metadata.resource_version != self.store[key].metadata.resource_version:
            raise ConflictError(f"update {kind.kind} {namespace}/{name}: conflict", status=409)
        return self._put(obj)

    def list(self, kind, namespace, label_selector=None):
        self._record("list", kind, namespace)
        wanted = {}
        if label_selector:
            for term in label_selector.split(","):
                k, v = term.split("=", 1)
                wanted[k] = v
        items = []
        for (kind_name, ns, _), obj in self.store.items():
            if kind_name != kind.kind or ns != namespace:
                continue
            labels = obj.metadata.labels or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                items.append(copy.deepcopy(obj))
        return items

    def delete(self, kind, namespace, name):
        self._record("delete", kind, namespace, name)
        self.store.pop(self._key(kind, namespace, name), None)


@pytest.fixture
def kube():
    """Empty in-memory Kubernetes."""
    return FakeKubeClient()


@pytest.fixture
def make_sset():
    """Factory for StatefulSets as the StatefulSet controller reports them."""

    def build(name, replicas=1, current=None, update=None, version=None, namespace="ns",
              generation=None, observed=None):
        template_labels = {}
        if version is not None:
            template_labels[label.VERSION_LABEL] = version
        return client.V1StatefulSet(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                generation=generation,
                labels=label.new_statefulset_labels("logs", name)
            ),
            spec=client.V1StatefulSetSpec(
                replicas=replicas,
                service_name=name,
                selector=client.V1LabelSelector(match_labels={label.STATEFULSET_NAME_LABEL: name}),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=template_labels)
                )
            ),
            status=client.V1StatefulSetStatus(
                replicas=replicas,
                current_revision=current,
                update_revision=update,
                observed_generation=observed
            )
        )

    return build


@pytest.fixture
def make_pod():
    """Factory for pods belonging to a StatefulSet."""

    def build(name, sset, revision=None, namespace="ns", scheme=None, ready=True):
        labels = label.new_statefulset_labels("logs", sset)
        if revision is not None:
            labels[label.REVISION_LABEL] = revision
        if scheme is not None:
            labels[label.HTTP_SCHEME_LABEL] = scheme
        return client.V1Pod(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
            status=client.V1PodStatus(
                conditions=[
                    client.V1PodCondition(type="Ready", status="True" if ready else "False")
                ]
            )
        )

    return build


@pytest.fixture
def cluster():
    """A SearchCluster body as kopf hands it to handlers."""
    return {
        "apiVersion": "searchstack.io/v1alpha1",
        "kind": "SearchCluster",
        "metadata": {"name": "logs", "namespace": "ns", "uid": "uid-logs"},
        "spec": {
            "version": "8.1.0",
            "nodeSets": [
                {"name": "master", "count": 3, "roles": {"data": False, "ingest": False, "ml": False}},
                {"name": "data", "count": 2, "roles": {"master": False}},
            ],
        },
    }
