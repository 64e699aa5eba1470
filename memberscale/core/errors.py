"""
Error taxonomy for the scaling controller and its collaborators.
"""

from __future__ import annotations


class ScalingError(Exception):
    """Base class for every failure a Scaler reports."""

    kind = "ScalingError"


class PreconditionError(ScalingError):
    """Membership status is not synced; no destructive action may run."""

    kind = "PreconditionError"


class ExternalAPIError(ScalingError):
    """A membership / administrative API call failed."""

    kind = "ExternalAPIError"


class ConsistencyError(ScalingError):
    """Post-action verification did not observe the expected state."""

    kind = "ConsistencyError"


class ResourceError(ScalingError):
    """A storage claim lookup, update or delete failed."""

    kind = "ResourceError"


class RequeueError(Exception):
    """
    Expected transient condition (e.g. leadership transfer pending).

    Not a :class:`ScalingError`; a requeue never feeds failure backoff.
    """


# ----------------------------------------------------------------------
# Object store errors


class ObjectStoreError(Exception):
    """Raised by the orchestration object store."""


class ConflictError(ObjectStoreError):
    """Optimistic-concurrency conflict: the stored resource version moved on."""


class AlreadyExistsError(ObjectStoreError):
    pass


class NotFoundError(ObjectStoreError):
    pass


# ----------------------------------------------------------------------
# Membership client errors


class MembershipAPIError(Exception):
    """Raised by membership clients when the administrative API call fails."""


class MemberNotFoundError(MembershipAPIError):
    """The member is not (or no longer) part of the membership group."""


FAILURE_KINDS = {
    cls.kind: cls
    for cls in (PreconditionError, ExternalAPIError, ConsistencyError, ResourceError)
}


__all__ = [
    "ScalingError",
    "PreconditionError",
    "ExternalAPIError",
    "ConsistencyError",
    "ResourceError",
    "RequeueError",
    "ObjectStoreError",
    "ConflictError",
    "AlreadyExistsError",
    "NotFoundError",
    "MembershipAPIError",
    "MemberNotFoundError",
    "FAILURE_KINDS",
]
