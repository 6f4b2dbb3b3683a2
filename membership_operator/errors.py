"""
Error taxonomy for the membership operator.

Store errors are transient by assumption and lead to a requeue. The
remaining classes are logic errors that retrying cannot fix.
"""


class StoreError(Exception):
    """Any failure talking to the cluster or execution space store."""


class NotFoundError(StoreError):
    pass


class AlreadyExistsError(StoreError):
    pass


class ConflictError(StoreError):
    """Optimistic concurrency check failed (stale resourceVersion)."""


class InvalidSpaceNameError(ValueError):
    """A cluster name that cannot be encoded as an execution space name."""


class FinalizerError(ValueError):
    """Misuse of the finalizer protocol."""
