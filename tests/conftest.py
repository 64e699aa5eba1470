"""
Shared pytest fixtures.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

import pytest
import ray

from memberscale.config.policy import MemberType
from memberscale.core.config import reset_scaling_config
from memberscale.core.control.events import InMemoryEventRecorder
from memberscale.core.control.retry import RetryPolicy
from memberscale.core.control.storage import FakeStorageClaimControl
from memberscale.core.control.store import InMemoryObjectStore
from memberscale.core.controllers.scaling_controller import ScalingController
from memberscale.core.entities.cluster import ClusterMeta, ClusterSyncStatus, MemberInfo

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s", force=True)
logging.getLogger("memberscale").setLevel(logging.DEBUG)

FIXED_NOW = datetime(2024, 5, 17, 8, 30, 0, tzinfo=timezone.utc)
FIXED_NOW_RFC3339 = "2024-05-17T08:30:00Z"
NO_WAIT_RETRY = RetryPolicy(attempts=4, initial_delay=0.0, factor=1.0, max_delay=0.0, jitter=0.0)


def make_meta(
    name: str = "basic",
    namespace: str = "default",
    *,
    member_type: MemberType = MemberType.PD,
    synced: bool = True,
    leader: str | None = None,
) -> ClusterMeta:
    status = ClusterSyncStatus(
        synced=synced,
        leader=MemberInfo(name=leader) if leader else None,
    )
    return ClusterMeta(namespace=namespace, name=name, status={member_type: status})


@pytest.fixture(autouse=True)
def clear_config(monkeypatch):
    monkeypatch.delenv("MEMBERSCALE_CONFIG", raising=False)
    reset_scaling_config()
    yield
    reset_scaling_config()


@pytest.fixture
def cluster_meta():
    """Factory for cluster metadata with one role's sync status."""
    return make_meta


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def recorder():
    return InMemoryEventRecorder()


@pytest.fixture
def claims(store, recorder):
    return FakeStorageClaimControl(store, recorder, retry_policy=NO_WAIT_RETRY, sleep=lambda _: None)


@pytest.fixture
def ray_runtime():
    """Spin up a local Ray runtime for tests and mirror worker logs to the driver."""
    try:
        ray.init(
            ignore_reinit_error=True,
            local_mode=True,
            logging_level=logging.INFO,
        )
    except PermissionError as exc:
        pytest.skip(f"Ray init requires system permissions not available in this environment: {exc}")
    except Exception as exc:  # pragma: no cover - restricted sandboxes
        if "Operation not permitted" in str(exc):
            pytest.skip(f"Ray init skipped due to restricted environment: {exc}")
        raise
    try:
        yield
    finally:
        ray.shutdown()


@pytest.fixture
def controller(ray_runtime):
    """Provide an isolated ScalingController instance per test."""
    name = f"test-controller-{uuid.uuid4().hex[:8]}"
    instance = ScalingController(name=name)
    try:
        yield instance
    finally:
        instance.shutdown()
