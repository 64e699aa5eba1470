"""
Membership clients for the clustered service's administrative API.

Clients are plain synchronous calls and give no idempotence guarantee; the
scaler re-lists members after every delete because a success response may be
reported before the membership view catches up.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple, Union

from memberscale.core.control.tracker import RequestTracker
from memberscale.core.entities.cluster import MemberInfo
from memberscale.core.errors import MemberNotFoundError

logger = logging.getLogger(__name__)

ClientKey = Tuple[str, str, str]


class MembershipClient(ABC):
    """Administrative API of one membership group."""

    @abstractmethod
    def list_members(self) -> List[MemberInfo]:
        """Return the current members."""

    @abstractmethod
    def delete_member(self, name: str) -> None:
        """
        Remove ``name`` from the group.

        Raises:
            MemberNotFoundError: the member is not part of the group.
            MembershipAPIError: any other API failure.
        """

    @abstractmethod
    def evict_leader(self, name: str) -> None:
        """Ask ``name`` to hand leadership to a peer."""


class OfflineMembershipClient(MembershipClient):
    """Client for roles without a live group: every member already reads as absent."""

    def list_members(self) -> List[MemberInfo]:
        return []

    def delete_member(self, name: str) -> None:
        logger.debug("offline membership: delete %s is a no-op", name)

    def evict_leader(self, name: str) -> None:
        logger.debug("offline membership: evict leader %s is a no-op", name)


class FakeMembershipClient(MembershipClient):
    """
    In-memory membership group for tests and demos.

    Records every call in :attr:`calls`, supports per-operation error injection and
    can keep a deleted member visible for a number of list calls to mimic an
    eventually consistent API.
    """

    def __init__(self, members: Iterable[Union[str, MemberInfo]] = (), leader: Optional[str] = None):
        self.members: Dict[str, MemberInfo] = {}
        for member in members:
            info = member if isinstance(member, MemberInfo) else MemberInfo(name=member, external_id=member)
            self.members[info.name] = info
        self.leader = leader
        self.calls: List[Tuple[str, str]] = []
        self.list_tracker = RequestTracker()
        self.delete_tracker = RequestTracker()
        self.evict_tracker = RequestTracker()
        self.stale_lists = 0
        self._ghosts: Dict[str, List] = {}

    def lag_deletes(self, list_calls: int) -> None:
        """Keep members deleted from now on visible for ``list_calls`` list calls."""
        self.stale_lists = max(0, list_calls)

    def call_count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def list_members(self) -> List[MemberInfo]:
        self.calls.append(("list_members", ""))
        self.list_tracker.check()
        visible = list(self.members.values())
        for name in list(self._ghosts):
            info, remaining = self._ghosts[name]
            visible.append(info)
            if remaining <= 1:
                del self._ghosts[name]
            else:
                self._ghosts[name][1] = remaining - 1
        return sorted(visible, key=lambda info: info.name)

    def delete_member(self, name: str) -> None:
        self.calls.append(("delete_member", name))
        self.delete_tracker.check()
        info = self.members.pop(name, None)
        if info is None:
            raise MemberNotFoundError(f"member {name} not found")
        if self.leader == name:
            self.leader = None
        if self.stale_lists:
            self._ghosts[name] = [info, self.stale_lists]

    def evict_leader(self, name: str) -> None:
        self.calls.append(("evict_leader", name))
        self.evict_tracker.check()
        if self.leader != name:
            return
        peers = sorted(member for member in self.members if member != name)
        self.leader = peers[0] if peers else name


class MembershipClientRegistry:
    """Lookup of membership clients by ``(namespace, cluster, role)``."""

    def __init__(self) -> None:
        self._clients: Dict[ClientKey, MembershipClient] = {}

    @staticmethod
    def _key(namespace: str, cluster: str, role: str) -> ClientKey:
        return (namespace, cluster, str(getattr(role, "value", role)))

    def register(self, namespace: str, cluster: str, role: str, client: MembershipClient) -> None:
        self._clients[self._key(namespace, cluster, role)] = client

    def unregister(self, namespace: str, cluster: str, role: str) -> None:
        self._clients.pop(self._key(namespace, cluster, role), None)

    def get(self, namespace: str, cluster: str, role: str) -> MembershipClient:
        key = self._key(namespace, cluster, role)
        try:
            return self._clients[key]
        except KeyError as exc:
            raise KeyError(f"no membership client registered for {key[0]}/{key[1]} role {key[2]}") from exc

    def __contains__(self, key: ClientKey) -> bool:
        return self._key(*key) in self._clients
