"""
ScaleStep calculation.

Pure functions: given the observed topology and a target (a bare replica count or
a full topology) return the one ordinal that changes next. Large gaps converge
over repeated reconcile passes, never in a single step.
"""

from __future__ import annotations

from typing import Union

from memberscale.core.entities.topology import Topology
from memberscale.core.entities.types import ScaleDirection, ScaleStep

DesiredTarget = Union[int, Topology]


def _noop(observed: Topology) -> ScaleStep:
    return ScaleStep(direction=ScaleDirection.NONE, ordinal=None, topology=observed)


def _step_towards_replicas(observed: Topology, desired_replicas: int) -> ScaleStep:
    if desired_replicas < 0:
        raise ValueError(f"desired replicas must be non-negative, got {desired_replicas}")
    if desired_replicas == observed.replicas:
        return _noop(observed)

    if desired_replicas > observed.replicas:
        # Fill the smallest hole before extending the tail.
        if observed.delete_slots:
            ordinal = min(observed.delete_slots)
        else:
            ordinal = observed.next_tail()
        topology = Topology(
            replicas=observed.replicas + 1,
            delete_slots=observed.delete_slots - {ordinal},
        )
        return ScaleStep(direction=ScaleDirection.OUT, ordinal=ordinal, topology=topology.normalized())

    ordinal = observed.highest_live()
    topology = Topology(replicas=observed.replicas - 1, delete_slots=observed.delete_slots)
    return ScaleStep(direction=ScaleDirection.IN, ordinal=ordinal, topology=topology.normalized())


def _step_towards_topology(observed: Topology, desired: Topology) -> ScaleStep:
    actual_live = observed.live_set()
    desired_live = desired.live_set()
    additions = sorted(desired_live - actual_live)
    deletions = sorted(actual_live - desired_live)

    slots = set(observed.delete_slots)
    if additions:
        # Scale out before scaling in to keep the group as available as possible.
        ordinal = additions[0]
        slots.discard(ordinal)
        topology = Topology(replicas=observed.replicas + 1, delete_slots=frozenset(slots))
        return ScaleStep(direction=ScaleDirection.OUT, ordinal=ordinal, topology=topology.normalized())

    if deletions:
        ordinal = deletions[-1]
        if ordinal in desired.delete_slots:
            slots.add(ordinal)
        topology = Topology(replicas=observed.replicas - 1, delete_slots=frozenset(slots))
        return ScaleStep(direction=ScaleDirection.IN, ordinal=ordinal, topology=topology.normalized())

    return _noop(observed)


def compute_scale_step(observed: Topology, desired: DesiredTarget) -> ScaleStep:
    """
    Compute the next safe step from ``observed`` towards ``desired``.

    The caller's replica count is never copied into the result: the resulting
    replica count is always ``observed.replicas`` plus or minus one, so a stale
    desired value that was already incremented cannot skip a step.

    Args:
        observed: topology currently persisted on the replica set.
        desired: target replica count, or a target topology with explicit delete
            slots (the explicit form picks ordinals by live-set difference).

    Returns:
        :class:`ScaleStep` whose ``topology`` is what a successful scaler commits.
    """
    if isinstance(desired, Topology):
        return _step_towards_topology(observed, desired)
    if isinstance(desired, bool) or not isinstance(desired, int):
        raise TypeError(f"desired must be an int or Topology, got {type(desired).__name__}")
    return _step_towards_replicas(observed, desired)


__all__ = ["DesiredTarget", "compute_scale_step"]
