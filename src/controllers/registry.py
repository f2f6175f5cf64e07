"""
Role-based registration of kopf handlers.

The mapping from role to registration functions is built once by the caller
and passed in; nothing here keeps module-level state.
"""

import logging
from typing import Callable, Iterable, Mapping, Sequence

import kopf

from .config import Settings

logger = logging.getLogger(__name__)

ALL_ROLES = "all"

Registration = Callable[[kopf.OperatorRegistry, Settings], None]


def add_to_registry(
    registry: kopf.OperatorRegistry,
    roles: Iterable[str],
    settings: Settings,
    registrations: Mapping[str, Sequence[Registration]]
) -> None:
    """Run the registration functions of every enabled role, in order."""
    roles = set(roles)
    unknown = roles - set(registrations) - {ALL_ROLES}
    if unknown:
        raise ValueError(f"unknown operator roles: {sorted(unknown)}")

    for role, functions in registrations.items():
        if ALL_ROLES not in roles and role not in roles:
            continue
        logger.info(f"Registering handlers for role {role}")
        for register in functions:
            register(registry, settings)
