"""
Per-role parameters for the generic member scaler.

A role never re-implements the scaling state machine; it only supplies naming,
the membership client and whether the leader guard applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from memberscale.config.policy import (
    LABEL_COMPONENT,
    LABEL_INSTANCE,
    LABEL_POD_NAME,
    MemberType,
    normalize_member_type,
)
from memberscale.core.control.membership import (
    MembershipClient,
    MembershipClientRegistry,
    OfflineMembershipClient,
)
from memberscale.core.entities.cluster import ClusterMeta

ClientFactory = Callable[[ClusterMeta], MembershipClient]


@dataclass(frozen=True)
class RoleAdapter:
    """
    Capability set that specialises :class:`~memberscale.core.scaling.scaler.MemberScaler`.

    Attributes:
        member_type: role value used in object names (``pd``, ``dm-master``...).
        name: registry name; defaults to the member type value.
        client_factory: builds the membership client for a cluster. When unset the
            client is looked up in the scaler's :class:`MembershipClientRegistry`.
        tracks_leader: roles without a group leader never evict.
        sole_survivor_ordinal: ordinals at or below this value skip the leader
            guard; there is no peer left to take leadership.
    """

    member_type: Union[MemberType, str]
    name: str = ""
    client_factory: Optional[ClientFactory] = None
    tracks_leader: bool = True
    sole_survivor_ordinal: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.role)

    @property
    def role(self) -> str:
        return str(getattr(self.member_type, "value", self.member_type))

    def set_name(self, cluster_name: str) -> str:
        return f"{cluster_name}-{self.role}"

    def member_name(self, cluster_name: str, ordinal: int) -> str:
        return f"{self.set_name(cluster_name)}-{ordinal}"

    def storage_claim_name(self, set_name: str, ordinal: int) -> str:
        return f"{self.role}-{set_name}-{ordinal}"

    def claim_selector(self, cluster_name: str, ordinal: int) -> Dict[str, str]:
        return {
            LABEL_INSTANCE: cluster_name,
            LABEL_COMPONENT: self.role,
            LABEL_POD_NAME: self.member_name(cluster_name, ordinal),
        }

    def skips_leader_guard(self, ordinal: int) -> bool:
        return not self.tracks_leader or ordinal <= self.sole_survivor_ordinal

    def membership_client(
        self,
        meta: ClusterMeta,
        registry: Optional[MembershipClientRegistry] = None,
    ) -> MembershipClient:
        if self.client_factory is not None:
            return self.client_factory(meta)
        if registry is None:
            raise KeyError(f"role {self.name} has no client factory and no membership registry was given")
        return registry.get(meta.namespace, meta.name, self.role)


def offline_client(_meta: ClusterMeta) -> MembershipClient:
    return OfflineMembershipClient()


_ROLE_REGISTRY: dict[str, RoleAdapter] = {}


def _role_key(name: Union[str, MemberType]) -> str:
    raw = str(getattr(name, "value", name)).strip().lower()
    member_type = normalize_member_type(raw)
    return member_type.value if member_type is not None else raw


def register_role(name: Union[str, MemberType], adapter: RoleAdapter, *, replace: bool = False) -> None:
    """
    Register ``adapter`` under ``name``.

    Args:
        name: registry name; member type aliases resolve to the canonical value.
        adapter: role parameters.
        replace: allow overwriting an existing registration.
    """
    key = _role_key(name)
    if not key:
        raise ValueError("Role name must be a non-empty string.")
    if key in _ROLE_REGISTRY and not replace:
        raise ValueError(f"Role '{key}' already registered.")
    _ROLE_REGISTRY[key] = adapter


def unregister_role(name: Union[str, MemberType]) -> None:
    """Remove a role; unknown names are ignored."""
    _ROLE_REGISTRY.pop(_role_key(name), None)


def available_roles() -> tuple[str, ...]:
    return tuple(sorted(_ROLE_REGISTRY))


def get_role(name: Union[str, MemberType]) -> RoleAdapter:
    key = _role_key(name)
    try:
        return _ROLE_REGISTRY[key]
    except KeyError as exc:
        raise ValueError(
            f"Unknown role '{name}'. Available roles: {', '.join(sorted(_ROLE_REGISTRY)) or '<none>'}"
        ) from exc


def _register_builtin_roles() -> None:
    register_role(MemberType.PD, RoleAdapter(MemberType.PD), replace=True)
    register_role(MemberType.TIKV, RoleAdapter(MemberType.TIKV), replace=True)
    register_role(MemberType.TIDB, RoleAdapter(MemberType.TIDB, tracks_leader=False), replace=True)
    register_role(MemberType.DM_MASTER, RoleAdapter(MemberType.DM_MASTER), replace=True)
    register_role(MemberType.DM_WORKER, RoleAdapter(MemberType.DM_WORKER, tracks_leader=False), replace=True)
    register_role(
        "offline",
        RoleAdapter("offline", client_factory=offline_client, tracks_leader=False),
        replace=True,
    )


_register_builtin_roles()


def reset_roles() -> None:
    """Drop custom registrations and restore the built-in roles."""
    _ROLE_REGISTRY.clear()
    _register_builtin_roles()


__all__ = [
    "ClientFactory",
    "RoleAdapter",
    "available_roles",
    "get_role",
    "offline_client",
    "register_role",
    "reset_roles",
    "unregister_role",
]
