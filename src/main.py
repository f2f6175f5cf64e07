"""
Search Operator - Main Entry Point

Manages SearchCluster custom resources, creating for each cluster:
- an external HTTP Service and a headless transport Service
- one StatefulSet and headless Service per node set

Handlers are grouped in roles. Each role maps to the functions that register
its handlers; the mapping is built here, once, and handed to the registry.

Run with: python main.py
"""

import kopf
import logging
from datetime import datetime, timezone

from controllers.cluster import reconcile_cluster
from controllers.config import Settings, get_settings
from controllers.k8s import KubeClient
from controllers.registry import add_to_registry

logger = logging.getLogger(__name__)

GROUP = 'searchstack.io'
VERSION = 'v1alpha1'
PLURAL = 'searchclusters'


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


def apply_status(patch, current: dict, observed: dict) -> bool:
    """Copy changed status fields into the patch; returns True if any changed."""
    changed = False
    for key, value in observed.items():
        if current.get(key) != value:
            patch.status[key] = value
            changed = True
    if changed:
        patch.status['lastUpdated'] = now()
    return changed


def reconcile(body, name, namespace, logger, patch, status) -> None:
    """Reconcile one SearchCluster and record the outcome in its status."""
    try:
        observed = reconcile_cluster(KubeClient(), body, get_settings())
    except kopf.PermanentError as e:
        logger.error(f"Error reconciling SearchCluster {name}: {e}")
        patch.status['phase'] = 'Error'
        patch.status['message'] = str(e)
        patch.status['lastUpdated'] = now()
        raise

    observed['message'] = (
        'Cluster ready' if observed['phase'] == 'Ready' else 'Rolling out changes'
    )
    if apply_status(patch, dict(status or {}), observed):
        logger.info(f"SearchCluster {namespace}/{name} is {observed['phase']}")


def register_cluster_handlers(registry: kopf.OperatorRegistry, settings: Settings) -> None:
    """Handlers reacting to SearchCluster changes."""

    @kopf.on.resume(GROUP, VERSION, PLURAL, registry=registry)
    @kopf.on.create(GROUP, VERSION, PLURAL, registry=registry)
    @kopf.on.update(GROUP, VERSION, PLURAL, registry=registry)
    def on_change(body, name, namespace, logger, patch, status, **kwargs):
        logger.info(f"Reconciling SearchCluster: {name} in namespace: {namespace}")
        reconcile(body, name, namespace, logger, patch, status)


def register_rollout_timer(registry: kopf.OperatorRegistry, settings: Settings) -> None:
    """Periodic pass that advances rollouts deferred by earlier passes."""

    @kopf.timer(GROUP, VERSION, PLURAL, interval=settings.reconcile_interval_seconds, registry=registry)
    def reconcile_periodically(body, name, namespace, logger, patch, status, **kwargs):
        reconcile(body, name, namespace, logger, patch, status)


ROLE_REGISTRATIONS = {
    'cluster': [register_cluster_handlers],
    'rollout': [register_rollout_timer],
}


def build_registry(config: Settings) -> kopf.OperatorRegistry:
    registry = kopf.OperatorRegistry()

    @kopf.on.startup(registry=registry)
    def configure(settings: kopf.OperatorSettings, **_):
        """Configure operator settings."""
        settings.posting.level = logging.INFO
        settings.watching.server_timeout = config.server_timeout_seconds
        logger.info("Search Operator starting...")

    add_to_registry(registry, config.roles, config, ROLE_REGISTRATIONS)
    return registry


def main() -> None:
    settings = get_settings()
    kopf.configure(debug=settings.log_level.upper() == 'DEBUG')
    registry = build_registry(settings)
    kopf.run(
        registry=registry,
        standalone=settings.standalone,
        clusterwide=not settings.namespaces,
        namespaces=settings.namespaces,
        liveness_endpoint=settings.liveness_endpoint,
    )


if __name__ == '__main__':
    main()
