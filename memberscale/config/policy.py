"""
Member role definitions and label constants.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Dict, Tuple


class MemberType(str, Enum):
    """
    Membership groups of a clustered database.

    Using ``str`` as a mixin keeps the values usable as plain strings in
    object names and makes the enum JSON-serialisable.
    """

    PD = "pd"
    TIKV = "tikv"
    TIDB = "tidb"
    DM_MASTER = "dm-master"
    DM_WORKER = "dm-worker"


# Label / annotation keys stamped on replica sets and storage claims.
LABEL_INSTANCE = "app.kubernetes.io/instance"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_POD_NAME = "memberscale.io/pod-name"

MANAGED_BY = "memberscale"

# Event types, mirroring the values understood by cluster event sinks.
EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

# Defaults; the YAML configuration may override both keys.
DELETE_SLOTS_ANNOTATION = "memberscale.io/delete-slots"
DEFER_DELETING_ANNOTATION = "memberscale.io/pvc-defer-deleting"


MEMBER_TYPE_ALIASES: Dict[str, str] = {
    "placement-driver": MemberType.PD.value,
    "placement_driver": MemberType.PD.value,
    "store": MemberType.TIKV.value,
    "storage": MemberType.TIKV.value,
    "sql": MemberType.TIDB.value,
    "master": MemberType.DM_MASTER.value,
    "dm_master": MemberType.DM_MASTER.value,
    "dmmaster": MemberType.DM_MASTER.value,
    "worker": MemberType.DM_WORKER.value,
    "dm_worker": MemberType.DM_WORKER.value,
    "dmworker": MemberType.DM_WORKER.value,
}


def resolve_member_type(value: str | MemberType | None) -> Tuple[MemberType | None, str | None]:
    """
    Resolve user input (enum, string, environment indirection) to a member type.

    Supports the following forms:
        - Enum members (:class:`MemberType`)
        - String equivalents, case-insensitive (``"pd"``, ``"dm-master"``)
        - Aliases (``"master"``, ``"store"``, etc.)
        - Environment indirection: ``"env:MEMBERSCALE_ROLE"``

    Returns:
        A tuple of ``(member_type, hint)`` where ``hint`` describes the resolution
        source. If resolution fails, returns ``(None, error_hint)``.
    """
    if value is None:
        return None, None

    if isinstance(value, MemberType):
        return value, f"enum:{value.name}"

    if not isinstance(value, str):
        return None, None

    raw = value.strip()
    if not raw:
        return None, None

    if raw.lower().startswith("env:"):
        env_key = raw[4:].strip()
        if not env_key:
            return None, "empty environment key"
        env_val = os.getenv(env_key)
        if env_val is None:
            return None, f"environment variable {env_key} is not set"
        raw = env_val.strip()
        if not raw:
            return None, f"environment variable {env_key} is empty"
        hint_prefix = f'env:{env_key}="{env_val}"'
    else:
        hint_prefix = None

    alias = MEMBER_TYPE_ALIASES.get(raw.lower(), raw.lower())
    try:
        member_type = MemberType(alias)
    except ValueError:
        return None, hint_prefix or f'value="{raw}"'

    return member_type, hint_prefix or f'value="{raw}"'


def normalize_member_type(value: str | MemberType) -> MemberType | None:
    """Convert user input into :class:`MemberType`, ``None`` when invalid."""
    member_type, _ = resolve_member_type(value)
    return member_type
