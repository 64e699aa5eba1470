"""
Domain entities used throughout the memberscale runtime.
"""

from .cluster import ClusterMeta, ClusterSyncStatus, FailureInfo, MemberInfo  # noqa: F401
from .resources import (  # noqa: F401
    Job,
    ReplicaSet,
    ReplicaSetSpec,
    Resource,
    StorageClaim,
    get_delete_slots,
    set_replicas_and_delete_slots,
    topology_of,
)
from .topology import Topology  # noqa: F401
from .types import ScaleDirection, ScaleOutcome, ScaleResult, ScaleStep  # noqa: F401

__all__ = [
    "ClusterMeta",
    "ClusterSyncStatus",
    "FailureInfo",
    "MemberInfo",
    "Job",
    "ReplicaSet",
    "ReplicaSetSpec",
    "Resource",
    "StorageClaim",
    "get_delete_slots",
    "set_replicas_and_delete_slots",
    "topology_of",
    "Topology",
    "ScaleDirection",
    "ScaleOutcome",
    "ScaleResult",
    "ScaleStep",
]
