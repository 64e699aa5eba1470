"""
Unit tests for replica set / job mutation and conflict retry.
"""

from __future__ import annotations

import pytest

from memberscale.config.policy import DELETE_SLOTS_ANNOTATION, EVENT_TYPE_WARNING, LABEL_INSTANCE
from memberscale.core.control.resource_control import FakeJobControl, FakeReplicaSetControl, ReplicaSetControl
from memberscale.core.control.retry import RetryPolicy
from memberscale.core.entities.resources import Job, ReplicaSet, ReplicaSetSpec, get_delete_slots
from memberscale.core.errors import AlreadyExistsError, ConflictError, NotFoundError

NO_WAIT = RetryPolicy(attempts=3, initial_delay=0.0, factor=1.0, max_delay=0.0, jitter=0.0)


class StaleOnceStore:
    """Delegating store that bumps the stored object before the first update."""

    def __init__(self, inner, mutate):
        self.inner = inner
        self.mutate = mutate
        self.update_calls = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update(self, obj):
        self.update_calls += 1
        if self.update_calls == 1:
            current = self.inner.get(type(obj), obj.namespace, obj.name)
            self.mutate(current)
            self.inner.update(current)
        return self.inner.update(obj)


class AlwaysConflictStore:
    def __init__(self, inner):
        self.inner = inner
        self.update_calls = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def update(self, obj):
        self.update_calls += 1
        raise ConflictError("the object has been modified")


def _seed(store, replicas=3) -> ReplicaSet:
    return store.create(ReplicaSet(namespace="default", name="basic-pd", spec=ReplicaSetSpec(replicas=replicas)))


def test_update_retries_on_conflict_and_keeps_concurrent_status(store, recorder, cluster_meta):
    stored = _seed(store)

    def concurrent_status_write(current):
        current.status["readyReplicas"] = 3
        current.labels["observed"] = "yes"

    api = StaleOnceStore(store, concurrent_status_write)
    control = ReplicaSetControl(api, recorder, lister=store, retry_policy=NO_WAIT, sleep=lambda _: None)

    desired = stored.deep_copy()
    desired.spec.replicas = 4
    desired.annotations[DELETE_SLOTS_ANNOTATION] = "[2]"
    updated = control.update_replica_set(cluster_meta(), desired)

    assert api.update_calls == 2
    assert updated.spec.replicas == 4
    assert get_delete_slots(updated) == frozenset({2})
    assert updated.status == {"readyReplicas": 3}
    assert updated.labels == {"observed": "yes"}
    assert recorder.reasons() == ["SuccessfulUpdate"]


def test_update_conflict_retry_removes_cleared_annotation(store, recorder, cluster_meta):
    seeded = ReplicaSet(namespace="default", name="basic-pd", spec=ReplicaSetSpec(replicas=2))
    seeded.annotations[DELETE_SLOTS_ANNOTATION] = "[1]"
    stored = store.create(seeded)

    api = StaleOnceStore(store, lambda current: current.status.update({"phase": "Normal"}))
    control = ReplicaSetControl(api, recorder, lister=store, retry_policy=NO_WAIT, sleep=lambda _: None)

    desired = stored.deep_copy()
    desired.spec.replicas = 1
    desired.annotations.pop(DELETE_SLOTS_ANNOTATION)
    updated = control.update_replica_set(cluster_meta(), desired)

    assert DELETE_SLOTS_ANNOTATION not in updated.annotations
    assert updated.status == {"phase": "Normal"}


def test_update_gives_up_after_attempts(store, recorder, cluster_meta):
    stored = _seed(store)
    api = AlwaysConflictStore(store)
    sleeps = []
    control = ReplicaSetControl(api, recorder, retry_policy=NO_WAIT, sleep=sleeps.append)

    with pytest.raises(ConflictError):
        control.update_replica_set(cluster_meta(), stored)

    assert api.update_calls == NO_WAIT.attempts
    assert len(sleeps) == NO_WAIT.attempts - 1
    assert recorder.reasons(EVENT_TYPE_WARNING) == ["FailedUpdate"]


def test_update_of_missing_object_is_not_retried(store, recorder, cluster_meta):
    control = ReplicaSetControl(store, recorder, retry_policy=NO_WAIT, sleep=lambda _: None)
    with pytest.raises(NotFoundError):
        control.update_replica_set(cluster_meta(), ReplicaSet(namespace="default", name="missing"))
    assert recorder.reasons() == ["FailedUpdate"]


def test_create_and_delete_record_events(store, recorder, cluster_meta):
    control = ReplicaSetControl(store, recorder)
    meta = cluster_meta()
    replica_set = ReplicaSet(namespace="default", name="basic-pd", spec=ReplicaSetSpec(replicas=1))

    control.create_replica_set(meta, replica_set)
    with pytest.raises(AlreadyExistsError):
        control.create_replica_set(meta, replica_set)
    control.delete_replica_set(meta, replica_set)

    assert recorder.reasons() == ["SuccessfulCreate", "SuccessfulDelete"]
    assert "create ReplicaSet basic-pd in TidbCluster basic successful" == recorder.events[0].message


def test_fake_replica_set_control_injects_errors(store, recorder, cluster_meta):
    stored = _seed(store)
    control = FakeReplicaSetControl(store, recorder, retry_policy=NO_WAIT, sleep=lambda _: None)
    control.set_update_error(NotFoundError("injected"), after=1)

    stored.spec.replicas = 2
    first = control.update_replica_set(cluster_meta(), stored)
    assert first.spec.replicas == 2

    with pytest.raises(NotFoundError, match="injected"):
        control.update_replica_set(cluster_meta(), first)
    assert len(control.updates) == 1
    assert control.update_tracker.requests == 2


def test_job_control_events(store, recorder, cluster_meta):
    control = FakeJobControl(store, recorder)
    meta = cluster_meta()
    job = Job(namespace="default", name="basic-backup", labels={LABEL_INSTANCE: "basic"})

    control.create_job(meta, job)
    control.delete_job(meta, job)
    with pytest.raises(NotFoundError):
        control.delete_job(meta, job)

    control.set_create_error(AlreadyExistsError("injected"))
    with pytest.raises(AlreadyExistsError):
        control.create_job(meta, job)

    assert recorder.reasons() == ["SuccessfulCreate", "SuccessfulDelete", "FailedDelete"]
    assert "job default/basic-backup" in recorder.events[0].message


def test_retry_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(factor=0.5)
    policy = RetryPolicy.from_dict({"attempts": "6", "max_delay": 2})
    assert policy.attempts == 6
    assert policy.max_delay == 2.0
