"""
Error types raised by the reconciliation core.

Programming errors derive from kopf.PermanentError so kopf stops retrying the
handler. Platform failures derive from kopf.TemporaryError so kopf retries
the handler later; nothing in this package retries on its own.
"""

from typing import Optional

import kopf

DEFAULT_RETRY_DELAY = 10.0


class ValidationError(kopf.PermanentError):
    """Reconciliation parameters are incomplete or inconsistent."""


class KindMismatchError(ValidationError):
    """Expected and reconciled objects are not of the same resource kind."""


class IdentityError(kopf.PermanentError):
    """Kind, namespace or name cannot be derived from an object."""


class OwnershipError(kopf.PermanentError):
    """An owner reference cannot be stamped onto a child object."""


class PlatformIOError(kopf.TemporaryError):
    """Communication with the Kubernetes API failed."""

    def __init__(self, message: str, status: Optional[int] = None,
                 delay: float = DEFAULT_RETRY_DELAY):
        super().__init__(message, delay=delay)
        self.status = status


class NotFoundError(PlatformIOError):
    """The requested object does not exist."""


class ConflictError(PlatformIOError):
    """The write lost an optimistic concurrency race or the object already exists."""
