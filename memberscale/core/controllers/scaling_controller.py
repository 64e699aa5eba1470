"""
Client-facing ScalingController façade.

The façade owns one reconcile actor per cluster key and exposes a synchronous
API: a single reconcile pass, or a converge loop that repeats passes until the
replica set matches the desired topology.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import ray

from memberscale.core.actors.config import ActorConfig
from memberscale.core.actors.reconciler import (
    OUTCOME_CREATED,
    OUTCOME_NOOP,
    OUTCOME_SCALED,
    ClusterBackend,
    MemberReconcilerActor,
)
from memberscale.core.config import get_scaling_config
from memberscale.core.control.membership import MembershipClient
from memberscale.core.entities.cluster import ClusterMeta
from memberscale.core.entities.resources import ReplicaSet, StorageClaim
from memberscale.core.entities.types import ScaleOutcome
from memberscale.core.scaling.roles import get_role

logger = logging.getLogger(__name__)

StatusProvider = Callable[[ClusterMeta], ClusterMeta]


class ScalingController:
    """Thin wrapper around the per-cluster MemberReconcilerActor handles."""

    def __init__(
        self,
        name: str = "memberscale-controller",
        *,
        namespace: str | None = None,
        detached: bool = False,
        max_restarts: int = -1,
        max_task_retries: int = 0,
        backend_factory: Optional[Callable[[ClusterMeta], ClusterBackend]] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            name: Prefix for the named reconcile actors.
            namespace: Ray namespace to place the actors in. ``None`` uses
                the caller's current namespace.
            detached: Create the actors as detached so they survive driver exits.
            max_restarts: Passed to Ray to automatically restart an actor
                on failure (``-1`` means infinite restarts).
            max_task_retries: Passed to Ray as the maximum automatic retries
                for actor tasks.
            backend_factory: Builds the store / membership / recorder bundle
                for a new cluster actor. Defaults to an in-memory backend.
            metadata: Free-form switches forwarded to :class:`ActorConfig`.
        """
        self.name = name
        self._namespace = namespace
        self._detached = detached
        self._max_restarts = max_restarts
        self._max_task_retries = max_task_retries
        self._backend_factory = backend_factory
        self._metadata = dict(metadata or {})
        self._actors: Dict[str, ray.actor.ActorHandle] = {}
        self._closed = False
        self._lock = threading.Lock()

    def _actor_name(self, meta: ClusterMeta) -> str:
        return f"{self.name}-{meta.namespace}-{meta.name}"

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("ScalingController has been shut down")

    def actor_handle(self, meta: ClusterMeta) -> ray.actor.ActorHandle:
        """
        返回集群对应的 reconcile actor 句柄，每个集群只创建一个 actor。

        并发调用方共享同一个句柄：查找与创建在同一把锁内完成。
        """
        with self._lock:
            self._ensure_open()
            handle = self._actors.get(meta.key)
            if handle is not None:
                return handle

            actor_name = self._actor_name(meta)
            config = ActorConfig(
                name=actor_name,
                namespace=self._namespace,
                max_restarts=self._max_restarts,
                max_task_retries=self._max_task_retries,
                metadata=dict(self._metadata),
            )
            actor_options: dict[str, Any] = {
                "max_restarts": self._max_restarts,
                "max_task_retries": self._max_task_retries,
            }
            if self._namespace is not None:
                actor_options["namespace"] = self._namespace
            if self._detached:
                actor_options.update({"name": actor_name, "lifetime": "detached", "get_if_exists": True})

            backend = self._backend_factory(meta) if self._backend_factory is not None else None
            handle = MemberReconcilerActor.options(**actor_options).remote(config, backend)
            self._actors[meta.key] = handle
        logger.info("reconcile actor %s ready for cluster %s", actor_name, meta.key)
        return handle

    # ------------------------------------------------------------------
    # Reconcile

    def reconcile(
        self,
        meta: ClusterMeta,
        role: str,
        replicas: int,
        *,
        delete_slots: Optional[Iterable[int]] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """Run one reconcile pass; at most one member is added or removed."""
        slots = sorted(delete_slots) if delete_slots is not None else None
        actor = self.actor_handle(meta)
        return ray.get(actor.reconcile.remote(meta, role, replicas, slots), timeout=timeout)

    def converge(
        self,
        meta: ClusterMeta,
        role: str,
        replicas: int,
        *,
        delete_slots: Optional[Iterable[int]] = None,
        max_passes: Optional[int] = None,
        requeue_interval: Optional[float] = None,
        status_provider: Optional[StatusProvider] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> dict:
        """
        Repeat reconcile passes until the replica set reaches the target.

        Stops on a no-op pass, on creation, on the first failed pass, or after
        ``max_passes``. Requeued passes wait ``requeue_interval`` seconds and do not
        count as failures. ``status_provider`` is called before every pass to
        refresh the membership status carried by ``meta``.

        Returns:
            The payload of the last pass plus ``converged`` and ``passes``.
        """
        config = get_scaling_config()
        passes_limit = max_passes if max_passes is not None else config.max_passes
        interval = requeue_interval if requeue_interval is not None else config.requeue_interval
        slots = sorted(delete_slots) if delete_slots is not None else None

        payload: dict = {"success": False, "outcome": ScaleOutcome.FAILED.value}
        passes = 0
        requeues = 0
        while passes < passes_limit:
            if status_provider is not None:
                meta = status_provider(meta)
            passes += 1
            payload = self.reconcile(meta, role, replicas, delete_slots=slots)
            outcome = payload.get("outcome")

            if outcome in (OUTCOME_NOOP, OUTCOME_CREATED):
                payload.update({"converged": True, "passes": passes, "requeues": requeues})
                return payload
            if outcome == OUTCOME_SCALED:
                continue
            if outcome == ScaleOutcome.REQUEUE.value:
                requeues += 1
                logger.info("cluster %s role %s requeued: %s", meta.key, role, payload.get("reason"))
                if interval > 0:
                    sleep(interval)
                continue

            logger.warning(
                "cluster %s role %s failed to converge: %s",
                meta.key,
                role,
                payload.get("reason") or payload.get("error"),
            )
            break

        payload.update({"converged": False, "passes": passes, "requeues": requeues})
        return payload

    # ------------------------------------------------------------------
    # Backend access

    def seed_replica_set(self, meta: ClusterMeta, replica_set: ReplicaSet) -> dict:
        return ray.get(self.actor_handle(meta).seed_replica_set.remote(replica_set))

    def seed_storage_claim(self, meta: ClusterMeta, claim: StorageClaim) -> dict:
        return ray.get(self.actor_handle(meta).seed_storage_claim.remote(claim))

    def register_membership(self, meta: ClusterMeta, role: str, client: MembershipClient) -> bool:
        """注册某个角色的成员管理客户端（客户端会被序列化到 actor 中）。"""
        return ray.get(
            self.actor_handle(meta).register_membership.remote(meta.namespace, meta.name, get_role(role).role, client)
        )

    def get_replica_set(self, meta: ClusterMeta, role: str) -> Optional[dict]:
        set_name = get_role(role).set_name(meta.name)
        return ray.get(self.actor_handle(meta).get_replica_set.remote(meta.namespace, set_name))

    def get_storage_claim(self, meta: ClusterMeta, name: str) -> Optional[dict]:
        return ray.get(self.actor_handle(meta).get_storage_claim.remote(meta.namespace, name))

    def membership_calls(self, meta: ClusterMeta, role: str) -> List[tuple]:
        return ray.get(
            self.actor_handle(meta).membership_calls.remote(meta.namespace, meta.name, get_role(role).role)
        )

    def list_events(self, meta: ClusterMeta) -> List[dict]:
        return ray.get(self.actor_handle(meta).list_events.remote())

    def snapshot_state(self, meta: ClusterMeta) -> dict:
        return ray.get(self.actor_handle(meta).snapshot_state.remote())

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            if not self._detached:
                for handle in self._actors.values():
                    ray.kill(handle, no_restart=True)
            self._actors.clear()
            self._closed = True
