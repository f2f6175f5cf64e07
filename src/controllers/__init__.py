# search-operator controllers
# Explicit imports to satisfy linters

from .cluster import reconcile_cluster, reconcile_statefulset
from .config import Settings, get_settings
from .errors import (
    ConflictError,
    IdentityError,
    KindMismatchError,
    NotFoundError,
    OwnershipError,
    PlatformIOError,
    ValidationError,
)
from .k8s import KubeClient, Scheme, default_scheme, set_controller_reference
from .reconciler import Params, reconcile_resource
from .registry import add_to_registry
from .services import resolve_base_url
from .sset import (
    any_version_matches,
    find_by_name,
    get_actual_pods,
    pending_update,
    rollout_complete,
    version_matches,
)

__all__ = [
    "reconcile_cluster",
    "reconcile_statefulset",
    "Settings",
    "get_settings",
    "ConflictError",
    "IdentityError",
    "KindMismatchError",
    "NotFoundError",
    "OwnershipError",
    "PlatformIOError",
    "ValidationError",
    "KubeClient",
    "Scheme",
    "default_scheme",
    "set_controller_reference",
    "Params",
    "reconcile_resource",
    "add_to_registry",
    "resolve_base_url",
    "any_version_matches",
    "find_by_name",
    "get_actual_pods",
    "pending_update",
    "rollout_complete",
    "version_matches",
]
