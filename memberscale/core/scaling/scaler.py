"""
Member scaler: the single safe step between an observed and a desired replica
set, executed against the membership API and storage claims.

The desired replica set is mutated only after every side effect of the step
succeeded. On a requeue or a failure it is left exactly as the caller supplied
it, so calling :meth:`Scaler.scale` again with the same inputs is always safe.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from memberscale.config.policy import DELETE_SLOTS_ANNOTATION, MemberType
from memberscale.core.control.membership import MembershipClient, MembershipClientRegistry
from memberscale.core.control.storage import StorageClaimControl, rfc3339_now
from memberscale.core.entities.cluster import ClusterMeta
from memberscale.core.entities.resources import (
    ReplicaSet,
    get_delete_slots,
    set_replicas_and_delete_slots,
    topology_of,
)
from memberscale.core.entities.topology import Topology
from memberscale.core.entities.types import ScaleDirection, ScaleResult, ScaleStep
from memberscale.core.errors import (
    ConsistencyError,
    ExternalAPIError,
    MemberNotFoundError,
    MembershipAPIError,
    NotFoundError,
    ObjectStoreError,
    PreconditionError,
    RequeueError,
    ResourceError,
    ScalingError,
)
from memberscale.core.scaling.calculator import DesiredTarget, compute_scale_step
from memberscale.core.scaling.roles import RoleAdapter, get_role

logger = logging.getLogger(__name__)

SKIP_REASON_CLAIM_NOT_FOUND = "claim not found"
SKIP_REASON_ANNOTATIONS_EMPTY = "annotations is empty"
SKIP_REASON_NOT_DEFER_DELETING = "defer-deleting annotation is empty"

# Errors a membership client may surface for a failed call.
_API_ERRORS = (MembershipAPIError, OSError)


class Scaler(ABC):
    """Scale one role's replica set by at most one member per call."""

    @abstractmethod
    def scale(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        """Dispatch to :meth:`scale_out` / :meth:`scale_in`, or return a no-op ``OK``."""

    @abstractmethod
    def scale_out(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        """Add one member."""

    @abstractmethod
    def scale_in(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        """Remove one member."""


@dataclass
class ScalerDependencies:
    """Collaborators shared by every role's scaler."""

    claims: StorageClaimControl
    membership: Optional[MembershipClientRegistry] = None
    delete_slots_annotation: str = DELETE_SLOTS_ANNOTATION
    clock: Optional[Callable[[], datetime]] = None


class MemberScaler(Scaler):
    """Generic scaling state machine specialised by a :class:`RoleAdapter`."""

    def __init__(self, role: RoleAdapter, deps: ScalerDependencies):
        self.role = role
        self.deps = deps

    # ------------------------------------------------------------------
    # Public entry points

    def scale(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        step = self.compute_step(old_set, new_set)
        if step.direction is ScaleDirection.OUT:
            return self._run(step, lambda: self._scale_out(meta, old_set, new_set, step))
        if step.direction is ScaleDirection.IN:
            return self._run(step, lambda: self._scale_in(meta, old_set, new_set, step))
        return ScaleResult.ok(step)

    def scale_out(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        step = self._expect(old_set, new_set, ScaleDirection.OUT)
        if step.is_noop:
            return ScaleResult.ok(step)
        return self._run(step, lambda: self._scale_out(meta, old_set, new_set, step))

    def scale_in(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        step = self._expect(old_set, new_set, ScaleDirection.IN)
        if step.is_noop:
            return ScaleResult.ok(step)
        return self._run(step, lambda: self._scale_in(meta, old_set, new_set, step))

    def compute_step(self, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleStep:
        """
        Compute the next step for this pair of replica sets.

        When the caller left the delete slots untouched only the replica count is
        a target (holes are refilled first); an explicit delete-slot change makes
        the whole desired topology the target.
        """
        key = self.deps.delete_slots_annotation
        observed = topology_of(old_set, key)
        desired_slots = get_delete_slots(new_set, key)
        target: DesiredTarget
        if desired_slots == observed.delete_slots:
            target = new_set.spec.replicas
        else:
            target = Topology(replicas=new_set.spec.replicas, delete_slots=desired_slots)
        return compute_scale_step(observed, target)

    # ------------------------------------------------------------------
    # Scale out

    def _scale_out(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet, step: ScaleStep) -> None:
        ordinal = step.ordinal
        assert ordinal is not None
        logger.info(
            "scaling out %s replica set %s/%s, ordinal: %d (replicas: %d, delete slots: %s)",
            self.role.role,
            old_set.namespace,
            old_set.name,
            ordinal,
            step.topology.replicas,
            sorted(step.topology.delete_slots),
        )
        self.delete_defer_deleting_claims(meta, ordinal, set_name=old_set.name)

        if not meta.sync_status(self.role.member_type).synced:
            raise PreconditionError(
                f"{meta.kind}: {meta.key}'s {self.role.role} status sync failed, can't scale out now"
            )

        self._commit(new_set, step)

    def delete_defer_deleting_claims(
        self, meta: ClusterMeta, ordinal: int, *, set_name: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Delete every storage claim of ``ordinal`` that still carries the
        deferred-deletion mark.

        Claims are found by the member labels and by the name scale-in marks
        (``<role>-<set_name>-<ordinal>``), so an unlabeled claim is purged too.

        Returns:
            Skip reasons keyed by claim (or member) name, for claims left in place.

        Raises:
            ResourceError: listing, reading or deleting a claim failed.
        """
        claims = self.deps.claims
        member_name = self.role.member_name(meta.name, ordinal)
        claim_name = self.role.storage_claim_name(set_name or self.role.set_name(meta.name), ordinal)
        skip_reasons: Dict[str, str] = {}
        try:
            labeled = claims.list_claims(meta.namespace, self.role.claim_selector(meta.name, ordinal))
        except ObjectStoreError as exc:
            raise ResourceError(
                f"{meta.kind} {meta.key}: failed to list storage claims of {member_name}: {exc}"
            ) from exc

        found = {claim.name: claim for claim in labeled}
        if claim_name not in found:
            try:
                found[claim_name] = claims.get_claim(meta.namespace, claim_name)
            except NotFoundError:
                pass
            except ObjectStoreError as exc:
                raise ResourceError(
                    f"{meta.kind} {meta.key}: failed to get storage claim {claim_name}: {exc}"
                ) from exc

        if not found:
            logger.info("%s %s, member: %s, storage claim not found", meta.kind, meta.key, member_name)
            skip_reasons[member_name] = SKIP_REASON_CLAIM_NOT_FOUND
            return skip_reasons

        for claim in found.values():
            if not claim.annotations:
                skip_reasons[claim.name] = SKIP_REASON_ANNOTATIONS_EMPTY
                continue
            if not claims.is_defer_deleting(claim):
                skip_reasons[claim.name] = SKIP_REASON_NOT_DEFER_DELETING
                continue
            try:
                claims.delete_claim(meta, claim)
            except ObjectStoreError as exc:
                logger.error("scale out: failed to delete storage claim %s/%s, %s", claim.namespace, claim.name, exc)
                raise ResourceError(
                    f"scale out: failed to delete storage claim {claim.namespace}/{claim.name}: {exc}"
                ) from exc
            logger.info("scale out: delete storage claim %s/%s successfully", claim.namespace, claim.name)
        return skip_reasons

    # ------------------------------------------------------------------
    # Scale in

    def _scale_in(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet, step: ScaleStep) -> None:
        # Remove the member from the group before the replica set shrinks,
        # one member per call.
        role = self.role.role
        status = meta.sync_status(self.role.member_type)
        if not status.synced:
            raise PreconditionError(f"{meta.kind}: {meta.key}'s {role} status sync failed, can't scale in now")

        ordinal = step.ordinal
        assert ordinal is not None
        member_name = self.role.member_name(meta.name, ordinal)
        logger.info(
            "scaling in %s replica set %s/%s, ordinal: %d (replicas: %d, delete slots: %s)",
            role,
            old_set.namespace,
            old_set.name,
            ordinal,
            step.topology.replicas,
            sorted(step.topology.delete_slots),
        )

        client = self._membership_client(meta)

        # A leader hands over first; the sole survivor has nobody to hand over to.
        if not self.role.skips_leader_guard(ordinal) and status.is_leader(member_name):
            try:
                client.evict_leader(member_name)
            except _API_ERRORS as exc:
                raise ExternalAPIError(f"{role} scale in: failed to evict leader {member_name}: {exc}") from exc
            raise RequeueError(
                f"{meta.kind} [{meta.key}]'s {role} member {member_name} is transferring leader, can't scale in now"
            )

        try:
            client.delete_member(member_name)
        except MemberNotFoundError:
            logger.info("%s scale in: member %s already removed", role, member_name)
        except _API_ERRORS as exc:
            logger.error("%s scale in: failed to delete member %s, %s", role, member_name, exc)
            raise ExternalAPIError(f"{role} scale in: failed to delete member {member_name}: {exc}") from exc
        else:
            logger.info("%s scale in: delete member %s successfully", role, member_name)

        # Double check: a success response may precede the membership view.
        try:
            members = client.list_members()
        except _API_ERRORS as exc:
            logger.error("%s scale in: failed to list members after deleting %s, %s", role, member_name, exc)
            raise ExternalAPIError(f"{role} scale in: failed to list members: {exc}") from exc
        if any(member.name == member_name for member in members):
            err = ConsistencyError(f"{role} scale in: {member_name} still exists after being deleted")
            logger.error("%s", err)
            raise err

        self._mark_claim(meta, old_set, ordinal)
        self._commit(new_set, step)

    def _mark_claim(self, meta: ClusterMeta, old_set: ReplicaSet, ordinal: int) -> None:
        claims = self.deps.claims
        claim_name = self.role.storage_claim_name(old_set.name, ordinal)
        try:
            claim = claims.get_claim(meta.namespace, claim_name)
        except ObjectStoreError as exc:
            raise ResourceError(
                f"{self.role.role} scale in: failed to get storage claim {claim_name} for cluster {meta.key}, error: {exc}"
            ) from exc

        now = rfc3339_now(self.deps.clock)
        try:
            claims.mark_defer_deleting(meta, claim, now)
        except ObjectStoreError as exc:
            logger.error(
                "%s scale in: failed to set storage claim %s/%s annotation: %s to %s",
                self.role.role,
                meta.namespace,
                claim_name,
                claims.defer_deleting_annotation,
                now,
            )
            raise ResourceError(f"{self.role.role} scale in: failed to mark storage claim {claim_name}: {exc}") from exc
        logger.info(
            "%s scale in: set storage claim %s/%s annotation: %s to %s",
            self.role.role,
            meta.namespace,
            claim_name,
            claims.defer_deleting_annotation,
            now,
        )

    # ------------------------------------------------------------------
    # Helpers

    def _membership_client(self, meta: ClusterMeta) -> MembershipClient:
        try:
            return self.role.membership_client(meta, self.deps.membership)
        except KeyError as exc:
            raise ExternalAPIError(str(exc.args[0]) if exc.args else str(exc)) from exc

    def _expect(self, old_set: ReplicaSet, new_set: ReplicaSet, direction: ScaleDirection) -> ScaleStep:
        step = self.compute_step(old_set, new_set)
        if not step.is_noop and step.direction is not direction:
            raise ValueError(
                f"next step for {old_set.namespace}/{old_set.name} scales {step.direction.value}, not {direction.value}"
            )
        return step

    def _commit(self, new_set: ReplicaSet, step: ScaleStep) -> None:
        set_replicas_and_delete_slots(new_set, step.topology, self.deps.delete_slots_annotation)

    @staticmethod
    def _run(step: ScaleStep, action: Callable[[], None]) -> ScaleResult:
        try:
            action()
        except RequeueError as exc:
            logger.info("%s", exc)
            return ScaleResult.requeue(str(exc), step, exc)
        except ScalingError as exc:
            return ScaleResult.failed(exc, step)
        return ScaleResult.ok(step)


class FakeScaler(Scaler):
    """Scaler without side effects: replicas move by one and delete slots are cleared."""

    def __init__(self, delete_slots_annotation: str = DELETE_SLOTS_ANNOTATION):
        self.delete_slots_annotation = delete_slots_annotation

    def scale(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        if new_set.spec.replicas > old_set.spec.replicas:
            return self.scale_out(meta, old_set, new_set)
        if new_set.spec.replicas < old_set.spec.replicas:
            return self.scale_in(meta, old_set, new_set)
        observed = topology_of(old_set, self.delete_slots_annotation)
        return ScaleResult.ok(ScaleStep(ScaleDirection.NONE, None, observed))

    def scale_out(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        topology = Topology(replicas=old_set.spec.replicas + 1)
        set_replicas_and_delete_slots(new_set, topology, self.delete_slots_annotation)
        return ScaleResult.ok(ScaleStep(ScaleDirection.OUT, old_set.spec.replicas, topology))

    def scale_in(self, meta: ClusterMeta, old_set: ReplicaSet, new_set: ReplicaSet) -> ScaleResult:
        topology = Topology(replicas=old_set.spec.replicas - 1)
        set_replicas_and_delete_slots(new_set, topology, self.delete_slots_annotation)
        return ScaleResult.ok(ScaleStep(ScaleDirection.IN, topology.replicas, topology))


def scaler_for(role: Union[str, MemberType, RoleAdapter], deps: ScalerDependencies) -> MemberScaler:
    """Build the scaler for a registered role name (or an explicit adapter)."""
    adapter = role if isinstance(role, RoleAdapter) else get_role(role)
    return MemberScaler(adapter, deps)
