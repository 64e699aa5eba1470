"""
Collaborators the scalers drive: membership clients, orchestration object
controls, storage claim marking and event recording.
"""

from .events import Event, EventRecorder, InMemoryEventRecorder, LoggingEventRecorder  # noqa: F401
from .membership import (  # noqa: F401
    FakeMembershipClient,
    MembershipClient,
    MembershipClientRegistry,
    OfflineMembershipClient,
)
from .resource_control import FakeJobControl, FakeReplicaSetControl, JobControl, ReplicaSetControl  # noqa: F401
from .retry import RetryPolicy  # noqa: F401
from .storage import FakeStorageClaimControl, StorageClaimControl  # noqa: F401
from .store import InMemoryObjectStore, ObjectStore  # noqa: F401
from .tracker import RequestTracker  # noqa: F401

__all__ = [
    "Event",
    "EventRecorder",
    "InMemoryEventRecorder",
    "LoggingEventRecorder",
    "FakeMembershipClient",
    "MembershipClient",
    "MembershipClientRegistry",
    "OfflineMembershipClient",
    "FakeJobControl",
    "FakeReplicaSetControl",
    "JobControl",
    "ReplicaSetControl",
    "RetryPolicy",
    "FakeStorageClaimControl",
    "StorageClaimControl",
    "InMemoryObjectStore",
    "ObjectStore",
    "RequestTracker",
]
