"""
Generic get-or-create-or-update of a single Kubernetes object.

Callers describe the target state (expected), hand over an empty object of the
same class (reconciled) and say how to detect and apply drift. Every call
re-reads the live object, so a call interrupted between create and status
update is repaired by simply calling again.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import KindMismatchError, NotFoundError, PlatformIOError, ValidationError
from .k8s import (
    KubeClient,
    assign,
    check_controllable,
    deep_copy_into,
    object_identity,
    set_controller_reference,
)

logger = logging.getLogger(__name__)

Hook = Callable[[], None]


@dataclass
class Params:
    """Inputs of reconcile_resource.

    expected is read-only to the reconciler. reconciled receives the live
    state and, once needs_update() says so, is mutated by update_reconciled()
    and written back. Hooks run in the fixed order pre_create or
    pre_update, write, post_update.
    """

    client: KubeClient
    expected: Any = None
    reconciled: Any = None
    needs_update: Optional[Callable[[], bool]] = None
    update_reconciled: Optional[Hook] = None
    # set as the controller owner reference of expected
    owner: Any = None
    pre_create: Optional[Hook] = None
    pre_update: Optional[Hook] = None
    post_update: Optional[Hook] = None

    def validate(self) -> None:
        """Raise if a required field is unset or expected and reconciled differ in class."""
        for field_name in ('expected', 'reconciled', 'needs_update', 'update_reconciled'):
            if getattr(self, field_name) is None:
                raise ValidationError(f"{field_name} must not be None")
        if type(self.expected) is not type(self.reconciled):
            raise KindMismatchError(
                f"expected is a {type(self.expected).__name__} "
                f"but reconciled is a {type(self.reconciled).__name__}"
            )


def reconcile_resource(params: Params) -> None:
    params.validate()

    scheme = params.client.scheme
    kind, namespace, name = object_identity(params.expected, scheme)

    if params.owner is not None:
        set_controller_reference(params.owner, params.expected.metadata, scheme)

    try:
        live = params.client.get(kind, namespace, name)
    except NotFoundError:
        live = None
    except PlatformIOError as e:
        logger.error(f"Generic GET for {kind.kind} {namespace}/{name} failed: {e}")
        raise PlatformIOError(
            f"failed to get {kind.kind} {namespace}/{name}: {e}", status=e.status
        ) from e

    if live is None:
        logger.info(f"Creating {kind.kind} {namespace}/{name}")
        if params.pre_create is not None:
            params.pre_create()
        deep_copy_into(params.reconciled, params.expected)
        created = params.client.create(params.reconciled)
        assign(params.reconciled, created)
        return

    assign(params.reconciled, live)
    if params.owner is not None:
        # an object adopted by another controller is never rewritten
        check_controllable(params.owner, params.reconciled.metadata, scheme)

    if not params.needs_update():
        return

    logger.info(f"Updating {kind.kind} {namespace}/{name}")
    if params.pre_update is not None:
        params.pre_update()
    params.update_reconciled()
    updated = params.client.update(params.reconciled)
    assign(params.reconciled, updated)
    if params.post_update is not None:
        params.post_update()
