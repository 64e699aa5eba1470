"""
Orchestration objects touched by the scaling controller.

These mirror the handful of fields the controller reads or writes on replica
sets, one-shot jobs and storage claims; everything else is opaque ``spec`` /
``status`` payload.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, FrozenSet, Tuple, TypeVar

from memberscale.config.policy import DELETE_SLOTS_ANNOTATION
from memberscale.core.entities.topology import Topology

ResourceKey = Tuple[str, str, str]
R = TypeVar("R", bound="Resource")


@dataclass
class Resource:
    """Common object metadata."""

    KIND: ClassVar[str] = "Resource"

    namespace: str = "default"
    name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    resource_version: int = 0

    @property
    def kind(self) -> str:
        return self.KIND

    def key(self) -> ResourceKey:
        return (self.KIND, self.namespace, self.name)

    def deep_copy(self: R) -> R:
        return copy.deepcopy(self)

    def matches(self, selector: Dict[str, str]) -> bool:
        return all(self.labels.get(key) == value for key, value in selector.items())


@dataclass
class ReplicaSetSpec:
    replicas: int = 0
    template: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReplicaSet(Resource):
    """Ordered replica group whose members are addressed by ordinal."""

    KIND: ClassVar[str] = "ReplicaSet"

    spec: ReplicaSetSpec = field(default_factory=ReplicaSetSpec)
    status: Dict[str, Any] = field(default_factory=dict)

    @property
    def replicas(self) -> int:
        return self.spec.replicas


@dataclass
class Job(Resource):
    """One-shot task object (backup, restore, cleanup)."""

    KIND: ClassVar[str] = "Job"

    spec: Dict[str, Any] = field(default_factory=dict)
    status: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StorageClaim(Resource):
    """Persistent storage claim bound to one member ordinal."""

    KIND: ClassVar[str] = "StorageClaim"

    spec: Dict[str, Any] = field(default_factory=dict)


# ----------------------------------------------------------------------
# Delete-slot encoding


def get_delete_slots(replica_set: ReplicaSet, annotation_key: str = DELETE_SLOTS_ANNOTATION) -> FrozenSet[int]:
    raw = replica_set.annotations.get(annotation_key)
    if not raw:
        return frozenset()
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"ReplicaSet {replica_set.namespace}/{replica_set.name} has malformed {annotation_key} annotation: {raw!r}"
        ) from exc
    if not isinstance(values, list):
        raise ValueError(f"{annotation_key} annotation must be a JSON list, got {raw!r}")
    return frozenset(int(value) for value in values)


def topology_of(replica_set: ReplicaSet, annotation_key: str = DELETE_SLOTS_ANNOTATION) -> Topology:
    return Topology(
        replicas=replica_set.spec.replicas,
        delete_slots=get_delete_slots(replica_set, annotation_key),
    )


def set_replicas_and_delete_slots(
    replica_set: ReplicaSet,
    topology: Topology,
    annotation_key: str = DELETE_SLOTS_ANNOTATION,
) -> None:
    """Write ``topology`` onto ``replica_set``; an empty slot set drops the annotation."""
    replica_set.spec.replicas = topology.replicas
    if topology.delete_slots:
        replica_set.annotations[annotation_key] = json.dumps(sorted(topology.delete_slots))
    else:
        replica_set.annotations.pop(annotation_key, None)
