"""
Kubernetes access for the reconciliation core.

KubeClient wraps the generated kubernetes.client APIs behind get/create/update
calls keyed by ResourceKind, translating ApiException into the error types of
controllers.errors. The Scheme maps model classes to their kind so callers
never pass kind strings around.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import (
    ConflictError,
    IdentityError,
    NotFoundError,
    OwnershipError,
    PlatformIOError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceKind:
    """A namespaced kind and the generated API methods that serve it."""

    kind: str
    api_version: str
    api: str
    resource: str

    @property
    def group(self) -> str:
        return self.api_version.rpartition('/')[0]


STATEFULSET = ResourceKind("StatefulSet", "apps/v1", "AppsV1Api", "stateful_set")
SERVICE = ResourceKind("Service", "v1", "CoreV1Api", "service")
POD = ResourceKind("Pod", "v1", "CoreV1Api", "pod")
ENDPOINTS = ResourceKind("Endpoints", "v1", "CoreV1Api", "endpoints")
CONFIG_MAP = ResourceKind("ConfigMap", "v1", "CoreV1Api", "config_map")
SECRET = ResourceKind("Secret", "v1", "CoreV1Api", "secret")


class Scheme:
    """Registry of model classes to resource kinds."""

    def __init__(self):
        self._kinds: Dict[type, ResourceKind] = {}

    def register(self, model: type, kind: ResourceKind) -> None:
        self._kinds[model] = kind

    def lookup(self, model: type) -> Optional[ResourceKind]:
        return self._kinds.get(model)

    def kind_for(self, obj: Any) -> ResourceKind:
        kind = self.lookup(type(obj))
        if kind is None:
            raise IdentityError(f"{type(obj).__name__} is not a registered resource kind")
        return kind


def default_scheme() -> Scheme:
    scheme = Scheme()
    scheme.register(client.V1StatefulSet, STATEFULSET)
    scheme.register(client.V1Service, SERVICE)
    scheme.register(client.V1Pod, POD)
    scheme.register(client.V1Endpoints, ENDPOINTS)
    scheme.register(client.V1ConfigMap, CONFIG_MAP)
    scheme.register(client.V1Secret, SECRET)
    return scheme


def object_identity(obj: Any, scheme: Scheme) -> Tuple[ResourceKind, str, str]:
    """Return (kind, namespace, name) of a model object."""
    metadata = getattr(obj, 'metadata', None)
    if metadata is None:
        raise IdentityError(f"{type(obj).__name__} has no metadata")
    if not metadata.name or not metadata.namespace:
        raise IdentityError(
            f"{type(obj).__name__} metadata must carry a name and a namespace "
            f"(got name={metadata.name!r}, namespace={metadata.namespace!r})"
        )
    return scheme.kind_for(obj), metadata.namespace, metadata.name


def assign(target: Any, source: Any) -> None:
    """Overwrite every API field of target with the matching field of source."""
    for attr in source.openapi_types:
        setattr(target, attr, getattr(source, attr))


def deep_copy_into(target: Any, source: Any) -> None:
    """Structural copy of source into target; the two share no nested objects."""
    assign(target, copy.deepcopy(source))


def _owner_reference(owner: Any, scheme: Scheme) -> client.V1OwnerReference:
    if isinstance(owner, Mapping):
        api_version = owner.get('apiVersion')
        kind = owner.get('kind')
        meta = owner.get('metadata') or {}
        name = meta.get('name')
        uid = meta.get('uid')
    else:
        resource_kind = scheme.lookup(type(owner))
        if resource_kind is None:
            raise OwnershipError(f"cannot resolve the kind of owner {type(owner).__name__}")
        api_version, kind = resource_kind.api_version, resource_kind.kind
        meta = getattr(owner, 'metadata', None)
        name = meta.name if meta else None
        uid = meta.uid if meta else None

    if not api_version or not kind:
        raise OwnershipError("owner has no apiVersion or kind")
    if not name or not uid:
        raise OwnershipError(f"owner {kind} has no name or uid")

    return client.V1OwnerReference(
        api_version=api_version,
        kind=kind,
        name=name,
        uid=uid,
        controller=True,
        block_owner_deletion=True
    )


def _same_owner(a: client.V1OwnerReference, b: client.V1OwnerReference) -> bool:
    return (
        a.api_version.rpartition('/')[0] == b.api_version.rpartition('/')[0]
        and a.kind == b.kind
        and a.name == b.name
    )


def _check_controller(ref: client.V1OwnerReference, metadata: client.V1ObjectMeta) -> None:
    for current in metadata.owner_references or []:
        if current.controller and current.uid != ref.uid:
            raise OwnershipError(
                f"{metadata.name} is already controlled by {current.kind} {current.name}"
            )


def check_controllable(owner: Any, metadata: client.V1ObjectMeta, scheme: Scheme) -> None:
    """Raise OwnershipError if a controller other than owner is set in metadata."""
    _check_controller(_owner_reference(owner, scheme), metadata)


def set_controller_reference(owner: Any, metadata: client.V1ObjectMeta, scheme: Scheme) -> None:
    """Stamp owner as the controller of the object described by metadata.

    An existing reference to the same owner is replaced; a controller reference
    to any other owner is an error.
    """
    ref = _owner_reference(owner, scheme)
    _check_controller(ref, metadata)
    refs = [r for r in metadata.owner_references or [] if not _same_owner(r, ref)]
    refs.append(ref)
    metadata.owner_references = refs


def merge_owner_references(
    live: Optional[List[client.V1OwnerReference]],
    expected: Optional[List[client.V1OwnerReference]]
) -> Optional[List[client.V1OwnerReference]]:
    """Live references with those of expected added or replaced."""
    expected = expected or []
    kept = [r for r in live or [] if not any(_same_owner(r, e) for e in expected)]
    return (kept + list(expected)) or None


def has_owner_references(
    live: Optional[List[client.V1OwnerReference]],
    expected: Optional[List[client.V1OwnerReference]]
) -> bool:
    """True if every reference of expected is present, by uid, in live."""
    live_uids = {r.uid for r in live or []}
    return all(r.uid in live_uids for r in expected or [])


def _translate(e: ApiException, action: str) -> PlatformIOError:
    if e.status == 404:
        return NotFoundError(f"{action}: not found", status=404)
    if e.status == 409:
        return ConflictError(f"{action}: conflict: {e.reason}", status=409)
    return PlatformIOError(f"{action}: {e.status} {e.reason}", status=e.status)


class KubeClient:
    """Synchronous get/create/update/list/delete over the registered kinds."""

    def __init__(self, api_client: Optional[client.ApiClient] = None,
                 scheme: Optional[Scheme] = None):
        self.api_client = api_client or client.ApiClient()
        self.scheme = scheme or default_scheme()
        self._apis: Dict[str, Any] = {}

    def _api(self, kind: ResourceKind) -> Any:
        if kind.api not in self._apis:
            self._apis[kind.api] = getattr(client, kind.api)(self.api_client)
        return self._apis[kind.api]

    def _call(self, kind: ResourceKind, verb: str, action: str, **kwargs) -> Any:
        method = getattr(self._api(kind), f"{verb}_namespaced_{kind.resource}")
        try:
            return method(**kwargs)
        except ApiException as e:
            raise _translate(e, action) from e
        except HTTPError as e:
            raise PlatformIOError(f"{action}: {e}") from e

    def get(self, kind: ResourceKind, namespace: str, name: str) -> Any:
        return self._call(
            kind, "read", f"get {kind.kind} {namespace}/{name}",
            name=name, namespace=namespace
        )

    def create(self, obj: Any) -> Any:
        kind, namespace, name = object_identity(obj, self.scheme)
        return self._call(
            kind, "create", f"create {kind.kind} {namespace}/{name}",
            namespace=namespace, body=obj
        )

    def update(self, obj: Any) -> Any:
        """Replace obj; a stale resource version surfaces as ConflictError."""
        kind, namespace, name = object_identity(obj, self.scheme)
        return self._call(
            kind, "replace", f"update {kind.kind} {namespace}/{name}",
            name=name, namespace=namespace, body=obj
        )

    def list(self, kind: ResourceKind, namespace: str,
             label_selector: Optional[str] = None) -> List[Any]:
        result = self._call(
            kind, "list", f"list {kind.kind} in {namespace}",
            namespace=namespace, label_selector=label_selector
        )
        return list(result.items)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        self._call(
            kind, "delete", f"delete {kind.kind} {namespace}/{name}",
            name=name, namespace=namespace
        )
