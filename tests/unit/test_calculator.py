"""
Unit tests for ScaleStep calculation.
"""

from __future__ import annotations

import pytest

from memberscale.core.entities.topology import Topology
from memberscale.core.entities.types import ScaleDirection
from memberscale.core.scaling.calculator import compute_scale_step


def test_equal_replicas_is_noop():
    observed = Topology.of(3)
    step = compute_scale_step(observed, 3)
    assert step.is_noop
    assert step.ordinal is None
    assert step.topology == observed


def test_scale_out_appends_tail_when_no_holes():
    step = compute_scale_step(Topology.of(3), 5)
    assert step.direction is ScaleDirection.OUT
    assert step.ordinal == 3
    assert step.topology == Topology.of(4)


def test_scale_out_fills_smallest_hole_first():
    observed = Topology.of(3, [1, 2])
    assert observed.live_ordinals() == [0, 3, 4]

    step = compute_scale_step(observed, 4)
    assert step.direction is ScaleDirection.OUT
    assert step.ordinal == 1
    assert step.topology == Topology.of(4, [2])
    assert step.topology.live_ordinals() == [0, 1, 3, 4]


def test_scale_in_removes_highest_live_ordinal_and_keeps_slots():
    observed = Topology.of(3, [1])
    step = compute_scale_step(observed, 1)
    assert step.direction is ScaleDirection.IN
    assert step.ordinal == 3
    assert step.topology == Topology.of(2, [1])


def test_scale_in_prunes_slots_above_new_tail():
    observed = Topology.of(2, [1])
    assert observed.live_ordinals() == [0, 2]

    step = compute_scale_step(observed, 1)
    assert step.ordinal == 2
    assert step.topology == Topology.of(1)


def test_result_always_moves_one_replica():
    observed = Topology.of(2)
    step = compute_scale_step(observed, 10)
    assert step.topology.replicas == 3

    step = compute_scale_step(Topology.of(10), 0)
    assert step.topology.replicas == 9
    assert step.ordinal == 9


def test_scale_to_zero_removes_ordinal_zero_last():
    step = compute_scale_step(Topology.of(1), 0)
    assert step.direction is ScaleDirection.IN
    assert step.ordinal == 0
    assert step.topology == Topology.of(0)


def test_explicit_topology_adds_before_deleting():
    # Move the live set from {0, 1, 2} to {0, 2, 3}.
    observed = Topology.of(3)
    desired = Topology.of(3, [1])

    first = compute_scale_step(observed, desired)
    assert first.direction is ScaleDirection.OUT
    assert first.ordinal == 3
    assert first.topology == Topology.of(4)

    second = compute_scale_step(first.topology, desired)
    assert second.direction is ScaleDirection.IN
    assert second.ordinal == 1
    assert second.topology == Topology.of(3, [1])

    assert compute_scale_step(second.topology, desired).is_noop


def test_explicit_topology_deletes_largest_difference_first():
    observed = Topology.of(5)
    desired = Topology.of(3, [2])

    step = compute_scale_step(observed, desired)
    assert step.direction is ScaleDirection.IN
    assert step.ordinal == 4
    # 4 is not a desired delete slot, so the set just shrinks.
    assert step.topology == Topology.of(4)

    step = compute_scale_step(step.topology, desired)
    assert step.ordinal == 2
    assert step.topology == Topology.of(3, [2])
    assert step.topology.live_ordinals() == [0, 1, 3]


def test_explicit_topology_removes_slot_to_scale_out():
    observed = Topology.of(2, [1])
    step = compute_scale_step(observed, Topology.of(3))
    assert step.direction is ScaleDirection.OUT
    assert step.ordinal == 1
    assert step.topology == Topology.of(3)


def test_invalid_desired_values():
    with pytest.raises(ValueError):
        compute_scale_step(Topology.of(1), -1)
    with pytest.raises(TypeError):
        compute_scale_step(Topology.of(1), True)
    with pytest.raises(TypeError):
        compute_scale_step(Topology.of(1), "3")
