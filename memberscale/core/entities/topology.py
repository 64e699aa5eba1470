"""
Replica topology value object.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Optional


@dataclass(frozen=True)
class Topology:
    """
    Replica count plus the set of ordinals excluded from the live range.

    Live ordinals are the first ``replicas`` non-negative integers that are not
    delete slots, so removing a member in the middle never renumbers the members
    above it.
    """

    replicas: int = 0
    delete_slots: FrozenSet[int] = frozenset()

    def __post_init__(self) -> None:
        replicas = int(self.replicas)
        if replicas < 0:
            raise ValueError(f"replicas must be non-negative, got {replicas}")
        slots = frozenset(int(slot) for slot in self.delete_slots)
        negative = sorted(slot for slot in slots if slot < 0)
        if negative:
            raise ValueError(f"delete slots must be non-negative ordinals, got {negative}")
        if 0 in slots:
            raise ValueError("ordinal 0 can never be a delete slot")
        object.__setattr__(self, "replicas", replicas)
        object.__setattr__(self, "delete_slots", slots)

    @classmethod
    def of(cls, replicas: int, delete_slots: Optional[Iterable[int]] = None) -> "Topology":
        return cls(replicas=replicas, delete_slots=frozenset(delete_slots or ()))

    def live_ordinals(self) -> List[int]:
        """Return live ordinals in ascending order."""
        ordinals: List[int] = []
        candidate = 0
        while len(ordinals) < self.replicas:
            if candidate not in self.delete_slots:
                ordinals.append(candidate)
            candidate += 1
        return ordinals

    def live_set(self) -> AbstractSet[int]:
        return frozenset(self.live_ordinals())

    def highest_live(self) -> Optional[int]:
        live = self.live_ordinals()
        return live[-1] if live else None

    def next_tail(self) -> int:
        highest = self.highest_live()
        return 0 if highest is None else highest + 1

    def normalized(self) -> "Topology":
        """Drop holes above the highest live ordinal; they carry no identity."""
        highest = self.highest_live()
        if highest is None:
            slots: FrozenSet[int] = frozenset()
        else:
            slots = frozenset(slot for slot in self.delete_slots if slot < highest)
        if slots == self.delete_slots:
            return self
        return Topology(replicas=self.replicas, delete_slots=slots)

    def to_dict(self) -> Dict[str, object]:
        return {"replicas": self.replicas, "delete_slots": sorted(self.delete_slots)}

    @classmethod
    def from_dict(cls, values: Dict[str, object]) -> "Topology":
        return cls.of(int(values.get("replicas", 0)), values.get("delete_slots") or ())  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"Topology(replicas={self.replicas}, delete_slots={sorted(self.delete_slots)})"
