"""
Cluster identity and membership status as seen by the scaling controller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from memberscale.config.policy import MemberType


@dataclass
class MemberInfo:
    """One member of a membership group as reported by the administrative API."""

    name: str
    external_id: str = ""
    health: bool = True


@dataclass
class FailureInfo:
    """Failure record maintained by the failure-detection subsystem."""

    member_name: str
    storage_claim: str = ""
    created_at: float = 0.0


@dataclass
class ClusterSyncStatus:
    """
    Last membership snapshot for one role.

    ``synced`` asserts the snapshot is fresh enough to trust for destructive
    decisions; the scaler only reads this object.
    """

    synced: bool = False
    leader: Optional[MemberInfo] = None
    members: Dict[str, MemberInfo] = field(default_factory=dict)
    failed_members: Dict[str, FailureInfo] = field(default_factory=dict)

    def is_leader(self, member_name: str) -> bool:
        return self.leader is not None and self.leader.name == member_name


@dataclass
class ClusterMeta:
    """Identity of the owning cluster object plus per-role sync status."""

    namespace: str
    name: str
    kind: str = "TidbCluster"
    status: Dict[MemberType | str, ClusterSyncStatus] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def sync_status(self, member_type: MemberType | str) -> ClusterSyncStatus:
        """Return the status for ``member_type``; unknown roles read as not synced."""
        wanted = str(getattr(member_type, "value", member_type))
        for key, status in self.status.items():
            if str(getattr(key, "value", key)) == wanted:
                return status
        return ClusterSyncStatus()
