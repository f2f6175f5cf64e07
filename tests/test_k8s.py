"""Tests for KubeClient."""

import pytest
from unittest.mock import MagicMock, Mock
from kubernetes import client
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import MaxRetryError

from controllers.errors import ConflictError, IdentityError, NotFoundError, PlatformIOError
from controllers.k8s import POD, SERVICE, STATEFULSET, KubeClient, assign, object_identity


@pytest.fixture
def kube_client():
    kube = KubeClient(api_client=MagicMock(spec=client.ApiClient))
    kube._apis["CoreV1Api"] = MagicMock(spec=client.CoreV1Api)
    kube._apis["AppsV1Api"] = MagicMock(spec=client.AppsV1Api)
    return kube


def new_statefulset():
    return client.V1StatefulSet(metadata=client.V1ObjectMeta(name="logs-data", namespace="ns"))


class TestKubeClient:
    """Test cases for KubeClient."""

    def test_get(self, kube_client):
        """Test get reads the namespaced object."""
        sset = new_statefulset()
        kube_client._apis["AppsV1Api"].read_namespaced_stateful_set.return_value = sset

        result = kube_client.get(STATEFULSET, "ns", "logs-data")

        kube_client._apis["AppsV1Api"].read_namespaced_stateful_set.assert_called_once_with(
            name="logs-data", namespace="ns"
        )
        assert result is sset

    def test_get_not_found(self, kube_client):
        """Test a 404 becomes NotFoundError."""
        kube_client._apis["CoreV1Api"].read_namespaced_service.side_effect = ApiException(status=404)

        with pytest.raises(NotFoundError) as excinfo:
            kube_client.get(SERVICE, "ns", "missing")

        assert excinfo.value.status == 404
        assert isinstance(excinfo.value.__cause__, ApiException)

    def test_update_conflict(self, kube_client):
        """Test a 409 on replace becomes ConflictError."""
        kube_client._apis["AppsV1Api"].replace_namespaced_stateful_set.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(ConflictError):
            kube_client.update(new_statefulset())

    def test_server_error(self, kube_client):
        """Test other statuses become PlatformIOError."""
        kube_client._apis["AppsV1Api"].create_namespaced_stateful_set.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(PlatformIOError) as excinfo:
            kube_client.create(new_statefulset())

        assert not isinstance(excinfo.value, (NotFoundError, ConflictError))
        assert excinfo.value.status == 500
        assert "StatefulSet ns/logs-data" in str(excinfo.value)

    def test_transport_error(self, kube_client):
        """Test connection failures become PlatformIOError."""
        kube_client._apis["CoreV1Api"].list_namespaced_pod.side_effect = MaxRetryError(None, "/api")

        with pytest.raises(PlatformIOError):
            kube_client.list(POD, "ns")

    def test_create(self, kube_client):
        """Test create posts the object to its namespace."""
        sset = new_statefulset()

        kube_client.create(sset)

        call_args = kube_client._apis["AppsV1Api"].create_namespaced_stateful_set.call_args
        assert call_args.kwargs["namespace"] == "ns"
        assert call_args.kwargs["body"] is sset

    def test_list(self, kube_client):
        """Test list passes the label selector and returns items."""
        pod = client.V1Pod(metadata=client.V1ObjectMeta(name="p"))
        mock_list = Mock()
        mock_list.items = [pod]
        kube_client._apis["CoreV1Api"].list_namespaced_pod.return_value = mock_list

        result = kube_client.list(POD, "ns", "a=b")

        call_args = kube_client._apis["CoreV1Api"].list_namespaced_pod.call_args
        assert call_args.kwargs["label_selector"] == "a=b"
        assert result == [pod]

    def test_delete(self, kube_client):
        """Test delete removes the named object."""
        kube_client.delete(POD, "ns", "logs-data-0")

        kube_client._apis["CoreV1Api"].delete_namespaced_pod.assert_called_once_with(
            name="logs-data-0", namespace="ns"
        )


class TestHelpers:

    def test_object_identity(self, kube_client):
        kind, namespace, name = object_identity(new_statefulset(), kube_client.scheme)
        assert (kind, namespace, name) == (STATEFULSET, "ns", "logs-data")

    def test_object_identity_without_metadata(self, kube_client):
        with pytest.raises(IdentityError):
            object_identity(client.V1StatefulSet(), kube_client.scheme)

    def test_assign_copies_every_field(self):
        source = client.V1Service(
            api_version="v1",
            metadata=client.V1ObjectMeta(name="a"),
            spec=client.V1ServiceSpec(type="ClusterIP")
        )
        target = client.V1Service(metadata=client.V1ObjectMeta(name="b"))

        assign(target, source)

        assert target == source

    def test_models_build_empty(self):
        """Test reconcile targets can start as empty models with generated field maps."""
        for model in (client.V1StatefulSet, client.V1Service):
            empty = model()
            assert empty.metadata is None
            assert "metadata" in model.openapi_types
