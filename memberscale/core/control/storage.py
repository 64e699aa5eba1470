"""
Storage claim access and deferred-deletion marking.

Scale-in never deletes a member's storage; it stamps the claim with a
timestamp annotation instead and leaves reclamation to an external process.
A marked claim must not be reused, so scale-out deletes it before the ordinal
is brought back.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from memberscale.config.policy import DEFER_DELETING_ANNOTATION
from memberscale.core.control.events import EventRecorder, record_operation_event
from memberscale.core.control.retry import RetryPolicy, conflict_retrying
from memberscale.core.control.store import ObjectStore
from memberscale.core.control.tracker import RequestTracker
from memberscale.core.entities.cluster import ClusterMeta
from memberscale.core.entities.resources import StorageClaim
from memberscale.core.errors import ConflictError, ObjectStoreError

logger = logging.getLogger(__name__)


def rfc3339_now(clock: Optional[Callable[[], datetime]] = None) -> str:
    now = clock() if clock is not None else datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StorageClaimControl:
    """Read, annotate and delete storage claims."""

    def __init__(
        self,
        api: ObjectStore,
        recorder: EventRecorder,
        *,
        lister: Optional[ObjectStore] = None,
        retry_policy: Optional[RetryPolicy] = None,
        defer_deleting_annotation: str = DEFER_DELETING_ANNOTATION,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.api = api
        self.lister = lister if lister is not None else api
        self.recorder = recorder
        self.retry_policy = retry_policy or RetryPolicy()
        self.defer_deleting_annotation = defer_deleting_annotation
        self._sleep = sleep

    def get_claim(self, namespace: str, name: str) -> StorageClaim:
        return self.lister.get(StorageClaim, namespace, name)

    def list_claims(self, namespace: str, selector: Dict[str, str]) -> List[StorageClaim]:
        return self.lister.list(StorageClaim, namespace, selector)

    def is_defer_deleting(self, claim: StorageClaim) -> bool:
        return bool(claim.annotations) and self.defer_deleting_annotation in claim.annotations

    def update_claim(self, controller: ClusterMeta, claim: StorageClaim) -> StorageClaim:
        """Persist labels and annotations of ``claim``, retrying on conflicts."""
        intended_labels = dict(claim.labels)
        intended_annotations = dict(claim.annotations)
        candidate = claim.deep_copy()
        updated: Optional[StorageClaim] = None

        try:
            for attempt in conflict_retrying(self.retry_policy, self._sleep):
                with attempt:
                    try:
                        updated = self.api.update(candidate)
                    except ConflictError:
                        logger.warning("storage claim %s/%s update conflict, retrying", claim.namespace, claim.name)
                        try:
                            latest = self.lister.get(StorageClaim, claim.namespace, claim.name)
                        except ObjectStoreError:
                            logger.exception("error getting updated storage claim %s/%s", claim.namespace, claim.name)
                        else:
                            latest.labels = copy.deepcopy(intended_labels)
                            latest.annotations = copy.deepcopy(intended_annotations)
                            candidate = latest
                        raise
        except ObjectStoreError as exc:
            record_operation_event(self.recorder, "update", controller, "StorageClaim", claim.name, exc)
            raise

        record_operation_event(self.recorder, "update", controller, "StorageClaim", claim.name, None)
        assert updated is not None
        return updated

    def delete_claim(self, controller: ClusterMeta, claim: StorageClaim) -> None:
        try:
            self.api.delete(StorageClaim, claim.namespace, claim.name)
        except ObjectStoreError as exc:
            record_operation_event(self.recorder, "delete", controller, "StorageClaim", claim.name, exc)
            raise
        record_operation_event(self.recorder, "delete", controller, "StorageClaim", claim.name, None)

    def mark_defer_deleting(self, controller: ClusterMeta, claim: StorageClaim, timestamp: str) -> StorageClaim:
        """Set (or overwrite) the deferred-deletion annotation on ``claim``."""
        marked = claim.deep_copy()
        if marked.annotations is None:
            marked.annotations = {}
        marked.annotations[self.defer_deleting_annotation] = timestamp
        return self.update_claim(controller, marked)


class FakeStorageClaimControl(StorageClaimControl):
    """StorageClaimControl with injectable errors per operation."""

    def __init__(self, api: ObjectStore, recorder: EventRecorder, **kwargs):
        super().__init__(api, recorder, **kwargs)
        self.get_tracker = RequestTracker()
        self.list_tracker = RequestTracker()
        self.update_tracker = RequestTracker()
        self.delete_tracker = RequestTracker()

    def get_claim(self, namespace: str, name: str) -> StorageClaim:
        self.get_tracker.check()
        return super().get_claim(namespace, name)

    def list_claims(self, namespace: str, selector: Dict[str, str]) -> List[StorageClaim]:
        self.list_tracker.check()
        return super().list_claims(namespace, selector)

    def update_claim(self, controller: ClusterMeta, claim: StorageClaim) -> StorageClaim:
        self.update_tracker.check()
        return super().update_claim(controller, claim)

    def delete_claim(self, controller: ClusterMeta, claim: StorageClaim) -> None:
        self.delete_tracker.check()
        super().delete_claim(controller, claim)
