"""
Per-cluster reconcile worker.

One actor owns one cluster key. Ray runs the method calls of an actor one at a
time, which is the single-flight guarantee the scalers rely on: two reconcile
passes for the same cluster never overlap, while different clusters reconcile
on their own actors in parallel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import ray
from ray.util import metrics

from memberscale.config.policy import (
    EVENT_TYPE_NORMAL,
    EVENT_TYPE_WARNING,
    LABEL_COMPONENT,
    LABEL_INSTANCE,
    LABEL_MANAGED_BY,
    MANAGED_BY,
)
from memberscale.core.actors.config import ActorConfig
from memberscale.core.config import get_scaling_config
from memberscale.core.control.events import EventRecorder, InMemoryEventRecorder
from memberscale.core.control.membership import FakeMembershipClient, MembershipClient, MembershipClientRegistry
from memberscale.core.control.resource_control import ReplicaSetControl
from memberscale.core.control.storage import StorageClaimControl
from memberscale.core.control.store import InMemoryObjectStore, ObjectStore
from memberscale.core.entities.cluster import ClusterMeta
from memberscale.core.entities.resources import (
    ReplicaSet,
    ReplicaSetSpec,
    StorageClaim,
    get_delete_slots,
    set_replicas_and_delete_slots,
)
from memberscale.core.entities.topology import Topology
from memberscale.core.entities.types import ScaleOutcome
from memberscale.core.errors import NotFoundError, ObjectStoreError
from memberscale.core.scaling.roles import get_role
from memberscale.core.scaling.scaler import FakeScaler, Scaler, ScalerDependencies, scaler_for
from memberscale.core.utils import configure_runtime_logging

logger = logging.getLogger(__name__)

OUTCOME_CREATED = "created"
OUTCOME_NOOP = "noop"
OUTCOME_SCALED = "scaled"


@dataclass
class ClusterBackend:
    """Orchestration store, membership clients and event sink of one cluster."""

    store: ObjectStore = field(default_factory=InMemoryObjectStore)
    membership: MembershipClientRegistry = field(default_factory=MembershipClientRegistry)
    recorder: EventRecorder = field(default_factory=InMemoryEventRecorder)


def replica_set_view(replica_set: ReplicaSet, annotation_key: str) -> dict:
    return {
        "namespace": replica_set.namespace,
        "name": replica_set.name,
        "replicas": replica_set.spec.replicas,
        "delete_slots": sorted(get_delete_slots(replica_set, annotation_key)),
        "resource_version": replica_set.resource_version,
    }


@ray.remote
class MemberReconcilerActor:
    """Reconcile the member replica sets of a single cluster."""

    def __init__(self, config: ActorConfig, backend: Optional[ClusterBackend] = None):
        configure_runtime_logging()
        self.config = config
        self.backend = backend or ClusterBackend()
        self.scaling_config = get_scaling_config()

        annotation = self.scaling_config.delete_slots_annotation
        self.replica_sets = ReplicaSetControl(
            self.backend.store,
            self.backend.recorder,
            retry_policy=self.scaling_config.update_retry,
            delete_slots_annotation=annotation,
        )
        self.claims = StorageClaimControl(
            self.backend.store,
            self.backend.recorder,
            retry_policy=self.scaling_config.update_retry,
            defer_deleting_annotation=self.scaling_config.defer_deleting_annotation,
        )
        self.deps = ScalerDependencies(
            claims=self.claims,
            membership=self.backend.membership,
            delete_slots_annotation=annotation,
        )
        self._scalers: Dict[str, Scaler] = {}

        self.scale_outcome_counter = metrics.Counter(
            name="memberscale_scale_outcome_count",
            description="Scale attempts by role and outcome",
            tag_keys=("role", "outcome"),
        )
        logger.info(
            "MemberReconcilerActor[%s] initialised (max_restarts=%d, max_task_retries=%d)",
            config.name,
            config.max_restarts,
            config.max_task_retries,
        )

    def _scaler_for(self, role: str) -> Scaler:
        scaler = self._scalers.get(role)
        if scaler is None:
            if self.config.metadata.get("scaler") == "fake":
                scaler = FakeScaler(self.deps.delete_slots_annotation)
            else:
                scaler = scaler_for(role, self.deps)
            self._scalers[role] = scaler
        return scaler

    # ------------------------------------------------------------------
    # Reconcile

    def reconcile(
        self,
        meta: ClusterMeta,
        role: str,
        replicas: int,
        delete_slots: Optional[Iterable[int]] = None,
    ) -> dict:
        """
        Run one pass for ``role`` towards ``replicas`` (and optional delete slots).

        Returns a payload with ``success``, ``outcome`` (``created`` / ``noop`` /
        ``scaled`` / ``requeue`` / ``failed``) and the persisted replica set view.
        """
        try:
            adapter = get_role(role)
            desired = Topology.of(replicas, delete_slots)
        except ValueError as exc:
            return {"success": False, "outcome": ScaleOutcome.FAILED.value, "error": str(exc)}

        annotation = self.deps.delete_slots_annotation
        set_name = adapter.set_name(meta.name)
        try:
            old_set = self.replica_sets.lister.get(ReplicaSet, meta.namespace, set_name)
        except NotFoundError:
            return self._create(meta, adapter.role, set_name, desired)

        new_set = old_set.deep_copy()
        new_set.spec.replicas = desired.replicas
        if delete_slots is not None:
            set_replicas_and_delete_slots(new_set, desired, annotation)

        result = self._scaler_for(adapter.name).scale(meta, old_set, new_set)
        self.scale_outcome_counter.inc(1, tags={"role": adapter.name, "outcome": result.outcome.value})
        payload: Dict[str, Any] = {
            "success": result.succeeded,
            "outcome": result.outcome.value,
            "reason": result.reason,
            "kind": result.kind,
            "backoff": result.backoff,
            "step": result.step.to_dict() if result.step else None,
        }

        if result.outcome is ScaleOutcome.REQUEUE:
            self.backend.recorder.event(meta, EVENT_TYPE_NORMAL, "ScaleRequeued", result.reason)
        elif result.outcome is ScaleOutcome.FAILED:
            self.backend.recorder.event(meta, EVENT_TYPE_WARNING, "ScaleFailed", f"{result.kind}: {result.reason}")
        elif result.committed:
            try:
                old_set = self.replica_sets.update_replica_set(meta, new_set)
            except ObjectStoreError as exc:
                logger.error("failed to persist replica set %s/%s: %s", meta.namespace, set_name, exc)
                payload.update({"success": False, "outcome": ScaleOutcome.FAILED.value, "reason": str(exc), "backoff": True})
            else:
                payload["outcome"] = OUTCOME_SCALED
        else:
            payload["outcome"] = OUTCOME_NOOP

        payload["replica_set"] = replica_set_view(old_set, annotation)
        return payload

    def _create(self, meta: ClusterMeta, role: str, set_name: str, desired: Topology) -> dict:
        replica_set = ReplicaSet(
            namespace=meta.namespace,
            name=set_name,
            labels={LABEL_INSTANCE: meta.name, LABEL_COMPONENT: role, LABEL_MANAGED_BY: MANAGED_BY},
            spec=ReplicaSetSpec(),
        )
        set_replicas_and_delete_slots(replica_set, desired, self.deps.delete_slots_annotation)
        try:
            created = self.replica_sets.create_replica_set(meta, replica_set)
        except ObjectStoreError as exc:
            return {"success": False, "outcome": ScaleOutcome.FAILED.value, "reason": str(exc), "backoff": True}
        logger.info("created replica set %s/%s with %d replicas", meta.namespace, set_name, desired.replicas)
        return {
            "success": True,
            "outcome": OUTCOME_CREATED,
            "replica_set": replica_set_view(created, self.deps.delete_slots_annotation),
        }

    # ------------------------------------------------------------------
    # Backend access (seeding / inspection)

    def seed_replica_set(self, replica_set: ReplicaSet) -> dict:
        created = self.backend.store.create(replica_set)
        return replica_set_view(created, self.deps.delete_slots_annotation)

    def seed_storage_claim(self, claim: StorageClaim) -> dict:
        created = self.backend.store.create(claim)
        return {"name": created.name, "annotations": dict(created.annotations)}

    def register_membership(self, namespace: str, cluster: str, role: str, client: MembershipClient) -> bool:
        self.backend.membership.register(namespace, cluster, role, client)
        return True

    def get_replica_set(self, namespace: str, name: str) -> Optional[dict]:
        try:
            replica_set = self.backend.store.get(ReplicaSet, namespace, name)
        except NotFoundError:
            return None
        return replica_set_view(replica_set, self.deps.delete_slots_annotation)

    def get_storage_claim(self, namespace: str, name: str) -> Optional[dict]:
        try:
            claim = self.backend.store.get(StorageClaim, namespace, name)
        except NotFoundError:
            return None
        return {"name": claim.name, "labels": dict(claim.labels), "annotations": dict(claim.annotations)}

    def membership_calls(self, namespace: str, cluster: str, role: str) -> List[tuple]:
        client = self.backend.membership.get(namespace, cluster, role)
        if isinstance(client, FakeMembershipClient):
            return list(client.calls)
        return []

    def list_events(self) -> List[dict]:
        recorder = self.backend.recorder
        if isinstance(recorder, InMemoryEventRecorder):
            return [item.to_dict() for item in recorder.events]
        return []

    def snapshot_state(self) -> dict:
        """Expose current state for inspection/testing."""
        store = self.backend.store
        sets: List[dict] = []
        if isinstance(store, InMemoryObjectStore):
            for namespace in store.namespaces():
                sets.extend(
                    replica_set_view(item, self.deps.delete_slots_annotation)
                    for item in store.list(ReplicaSet, namespace)
                )
        return {
            "name": self.config.name,
            "max_restarts": self.config.max_restarts,
            "max_task_retries": self.config.max_task_retries,
            "replica_sets": sets,
            "scalers": sorted(self._scalers),
        }
