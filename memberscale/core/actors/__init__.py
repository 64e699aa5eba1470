"""
Ray actors that back the memberscale control plane.

Each cluster key is served by one :class:`MemberReconcilerActor`; Ray executes
its method calls one at a time.
"""

from .config import ActorConfig  # noqa: F401
from .reconciler import (  # noqa: F401
    OUTCOME_CREATED,
    OUTCOME_NOOP,
    OUTCOME_SCALED,
    ClusterBackend,
    MemberReconcilerActor,
    replica_set_view,
)

__all__ = [
    "ActorConfig",
    "ClusterBackend",
    "MemberReconcilerActor",
    "OUTCOME_CREATED",
    "OUTCOME_NOOP",
    "OUTCOME_SCALED",
    "replica_set_view",
]
