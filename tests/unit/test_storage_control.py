from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from memberscale.config.policy import DEFER_DELETING_ANNOTATION
from memberscale.core.control.storage import StorageClaimControl, rfc3339_now
from memberscale.core.entities.resources import StorageClaim
from memberscale.core.errors import ConflictError, NotFoundError


def _claim(name="pd-basic-pd-1", **annotations) -> StorageClaim:
    return StorageClaim(namespace="default", name=name, labels={"app": "pd"}, annotations=dict(annotations))


def test_rfc3339_now_is_utc_seconds():
    tz = timezone(timedelta(hours=8))
    assert rfc3339_now(lambda: datetime(2024, 5, 17, 16, 30, 0, 123456, tzinfo=tz)) == "2024-05-17T08:30:00Z"
    assert rfc3339_now(lambda: datetime(2024, 5, 17, 8, 30, 0)) == "2024-05-17T08:30:00Z"
    assert rfc3339_now().endswith("Z")


def test_mark_defer_deleting_sets_only_its_key(claims, store, cluster_meta):
    store.create(_claim(owner="someone"))
    claim = claims.get_claim("default", "pd-basic-pd-1")

    marked = claims.mark_defer_deleting(cluster_meta(), claim, "2024-05-17T08:30:00Z")

    assert marked.annotations == {"owner": "someone", DEFER_DELETING_ANNOTATION: "2024-05-17T08:30:00Z"}
    assert claims.is_defer_deleting(marked)
    assert not claims.is_defer_deleting(claim)


def test_update_claim_retries_with_intended_annotations(store, recorder, cluster_meta):
    stored = store.create(_claim())
    bumped = stored.deep_copy()
    bumped.spec["volumeName"] = "pv-1"
    store.update(bumped)

    control = StorageClaimControl(store, recorder, sleep=lambda _: None)
    stale = stored.deep_copy()
    stale.annotations["x"] = "y"
    updated = control.update_claim(cluster_meta(), stale)

    assert updated.annotations == {"x": "y"}
    assert updated.spec == {"volumeName": "pv-1"}
    assert recorder.reasons() == ["SuccessfulUpdate"]


def test_update_claim_missing_records_failure(claims, recorder, cluster_meta):
    with pytest.raises(NotFoundError):
        claims.update_claim(cluster_meta(), _claim())
    assert recorder.reasons() == ["FailedUpdate"]


def test_list_claims_by_selector(claims, store):
    store.create(_claim("a"))
    store.create(StorageClaim(namespace="default", name="b", labels={"app": "tikv"}))
    store.create(StorageClaim(namespace="other", name="c", labels={"app": "pd"}))

    assert [claim.name for claim in claims.list_claims("default", {"app": "pd"})] == ["a"]


def test_delete_claim_events(claims, store, recorder, cluster_meta):
    claim = store.create(_claim())
    claims.delete_claim(cluster_meta(), claim)
    with pytest.raises(NotFoundError):
        claims.delete_claim(cluster_meta(), claim)
    assert recorder.reasons() == ["SuccessfulDelete", "FailedDelete"]


def test_in_memory_store_optimistic_concurrency(store):
    created = store.create(_claim())
    assert created.resource_version == 1
    store.update(created)
    with pytest.raises(ConflictError):
        store.update(created)
    assert store.namespaces() == ["default"]
    assert len(store) == 1
