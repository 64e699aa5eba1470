"""
Replica set and job mutation against the orchestration API.

Every mutation records a ``Successful<Verb>`` / ``Failed<Verb>`` event against
the owning cluster object. Replica set updates retry on optimistic-concurrency
conflicts: the latest object is re-read from the lister and only the fields the
caller intended to change (``spec`` and the delete-slot annotation) are applied
again, so concurrently written status is never clobbered.
"""

from __future__ import annotations

import copy
import logging
from typing import Callable, List, Optional

from memberscale.config.policy import DELETE_SLOTS_ANNOTATION, LABEL_INSTANCE
from memberscale.core.control.events import EventRecorder, record_operation_event
from memberscale.core.control.retry import RetryPolicy, conflict_retrying
from memberscale.core.control.store import ObjectStore
from memberscale.core.control.tracker import RequestTracker
from memberscale.core.entities.cluster import ClusterMeta
from memberscale.core.entities.resources import Job, ReplicaSet
from memberscale.core.errors import AlreadyExistsError, ConflictError, ObjectStoreError

logger = logging.getLogger(__name__)


class ReplicaSetControl:
    """Create, update and delete replica sets owned by a cluster object."""

    def __init__(
        self,
        api: ObjectStore,
        recorder: EventRecorder,
        *,
        lister: Optional[ObjectStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        delete_slots_annotation: str = DELETE_SLOTS_ANNOTATION,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.api = api
        self.lister = lister if lister is not None else api
        self.recorder = recorder
        self.retry_policy = retry_policy or RetryPolicy()
        self.delete_slots_annotation = delete_slots_annotation
        self._sleep = sleep

    def create_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> ReplicaSet:
        try:
            created = self.api.create(replica_set)
        except AlreadyExistsError:
            # Already-exists is reported to the caller without an event.
            raise
        except ObjectStoreError as exc:
            record_operation_event(self.recorder, "create", controller, "ReplicaSet", replica_set.name, exc)
            raise
        record_operation_event(self.recorder, "create", controller, "ReplicaSet", replica_set.name, None)
        return created

    def update_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> ReplicaSet:
        namespace = replica_set.namespace
        set_name = replica_set.name
        intended_spec = copy.deepcopy(replica_set.spec)
        intended_slots = replica_set.annotations.get(self.delete_slots_annotation)
        candidate = replica_set.deep_copy()
        updated: Optional[ReplicaSet] = None

        try:
            for attempt in conflict_retrying(self.retry_policy, self._sleep):
                with attempt:
                    try:
                        updated = self.api.update(candidate)
                    except ConflictError as exc:
                        logger.error(
                            "failed to update %s: [%s]'s ReplicaSet: [%s/%s], error: %s",
                            controller.kind,
                            controller.key,
                            namespace,
                            set_name,
                            exc,
                        )
                        candidate = self._refresh(candidate, intended_spec, intended_slots)
                        raise
        except ObjectStoreError as exc:
            record_operation_event(self.recorder, "update", controller, "ReplicaSet", set_name, exc)
            raise

        logger.info(
            "%s: [%s]'s ReplicaSet: [%s/%s] updated successfully",
            controller.kind,
            controller.key,
            namespace,
            set_name,
        )
        record_operation_event(self.recorder, "update", controller, "ReplicaSet", set_name, None)
        assert updated is not None
        return updated

    def _refresh(self, candidate: ReplicaSet, intended_spec, intended_slots: Optional[str]) -> ReplicaSet:
        try:
            latest = self.lister.get(ReplicaSet, candidate.namespace, candidate.name)
        except ObjectStoreError:
            logger.exception(
                "error getting updated ReplicaSet %s/%s from lister", candidate.namespace, candidate.name
            )
            return candidate
        latest.spec = copy.deepcopy(intended_spec)
        if intended_slots is None:
            latest.annotations.pop(self.delete_slots_annotation, None)
        else:
            latest.annotations[self.delete_slots_annotation] = intended_slots
        return latest

    def delete_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> None:
        try:
            self.api.delete(ReplicaSet, replica_set.namespace, replica_set.name)
        except ObjectStoreError as exc:
            record_operation_event(self.recorder, "delete", controller, "ReplicaSet", replica_set.name, exc)
            raise
        record_operation_event(self.recorder, "delete", controller, "ReplicaSet", replica_set.name, None)


class JobControl:
    """Manage one-shot jobs used by backup, restore and cleanup flows."""

    def __init__(self, api: ObjectStore, recorder: EventRecorder):
        self.api = api
        self.recorder = recorder

    def create_job(self, controller: ClusterMeta, job: Job) -> Job:
        instance = job.labels.get(LABEL_INSTANCE, "")
        kind = controller.kind.lower()
        try:
            created = self.api.create(job)
        except ObjectStoreError as exc:
            logger.error("failed to create %s job: [%s/%s], cluster: %s, err: %s", kind, job.namespace, job.name, instance, exc)
            self._record("create", controller, job, exc)
            raise
        logger.debug("create %s job: [%s/%s] successfully, cluster: %s", kind, job.namespace, job.name, instance)
        self._record("create", controller, job, None)
        return created

    def delete_job(self, controller: ClusterMeta, job: Job) -> None:
        """Delete ``job``; dependents go first (foreground propagation)."""
        instance = job.labels.get(LABEL_INSTANCE, "")
        kind = controller.kind.lower()
        try:
            self.api.delete(Job, job.namespace, job.name)
        except ObjectStoreError as exc:
            logger.error("failed to delete %s job: [%s/%s], cluster: %s, err: %s", kind, job.namespace, job.name, instance, exc)
            self._record("delete", controller, job, exc)
            raise
        logger.debug("delete %s job: [%s/%s] successfully, cluster: %s", kind, job.namespace, job.name, instance)
        self._record("delete", controller, job, None)

    def _record(self, verb: str, controller: ClusterMeta, job: Job, err: Optional[BaseException]) -> None:
        record_operation_event(self.recorder, verb, controller, "job", f"{job.namespace}/{job.name}", err)


# ----------------------------------------------------------------------
# Fakes


class FakeReplicaSetControl(ReplicaSetControl):
    """ReplicaSetControl with injectable errors and a record of updates."""

    def __init__(self, api: ObjectStore, recorder: EventRecorder, **kwargs):
        super().__init__(api, recorder, **kwargs)
        self.create_tracker = RequestTracker()
        self.update_tracker = RequestTracker()
        self.delete_tracker = RequestTracker()
        self.updates: List[ReplicaSet] = []

    def set_create_error(self, err: BaseException, after: int = 0) -> None:
        self.create_tracker.set_error(err, after=after)

    def set_update_error(self, err: BaseException, after: int = 0) -> None:
        self.update_tracker.set_error(err, after=after)

    def set_delete_error(self, err: BaseException, after: int = 0) -> None:
        self.delete_tracker.set_error(err, after=after)

    def create_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> ReplicaSet:
        self.create_tracker.check()
        return super().create_replica_set(controller, replica_set)

    def update_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> ReplicaSet:
        self.update_tracker.check()
        updated = super().update_replica_set(controller, replica_set)
        self.updates.append(updated.deep_copy())
        return updated

    def delete_replica_set(self, controller: ClusterMeta, replica_set: ReplicaSet) -> None:
        self.delete_tracker.check()
        super().delete_replica_set(controller, replica_set)


class FakeJobControl(JobControl):
    def __init__(self, api: ObjectStore, recorder: EventRecorder):
        super().__init__(api, recorder)
        self.create_tracker = RequestTracker()
        self.delete_tracker = RequestTracker()

    def set_create_error(self, err: BaseException, after: int = 0) -> None:
        self.create_tracker.set_error(err, after=after)

    def set_delete_error(self, err: BaseException, after: int = 0) -> None:
        self.delete_tracker.set_error(err, after=after)

    def create_job(self, controller: ClusterMeta, job: Job) -> Job:
        self.create_tracker.check()
        return super().create_job(controller, job)

    def delete_job(self, controller: ClusterMeta, job: Job) -> None:
        self.delete_tracker.check()
        super().delete_job(controller, job)
