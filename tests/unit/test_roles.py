from __future__ import annotations

import pytest

from memberscale.config.policy import (
    LABEL_COMPONENT,
    LABEL_INSTANCE,
    LABEL_POD_NAME,
    MemberType,
    normalize_member_type,
    resolve_member_type,
)
from memberscale.core.control.membership import (
    FakeMembershipClient,
    MembershipClientRegistry,
    OfflineMembershipClient,
)
from memberscale.core.scaling.roles import (
    RoleAdapter,
    available_roles,
    get_role,
    register_role,
    unregister_role,
)


def test_builtin_roles_registered():
    assert set(available_roles()) >= {"pd", "tikv", "tidb", "dm-master", "dm-worker", "offline"}


def test_role_lookup_accepts_enum_and_aliases():
    assert get_role(MemberType.DM_MASTER).role == "dm-master"
    assert get_role("master") is get_role("dm-master")
    assert get_role("PD") is get_role(MemberType.PD)


def test_unknown_role_lists_available():
    with pytest.raises(ValueError, match="Available roles"):
        get_role("ticdc")


def test_naming_conventions():
    adapter = get_role("dm-master")
    assert adapter.set_name("basic") == "basic-dm-master"
    assert adapter.member_name("basic", 2) == "basic-dm-master-2"
    assert adapter.storage_claim_name("basic-dm-master", 2) == "dm-master-basic-dm-master-2"
    assert adapter.claim_selector("basic", 2) == {
        LABEL_INSTANCE: "basic",
        LABEL_COMPONENT: "dm-master",
        LABEL_POD_NAME: "basic-dm-master-2",
    }


def test_leader_guard_flags():
    assert not get_role("pd").skips_leader_guard(1)
    assert get_role("pd").skips_leader_guard(0)
    assert get_role("tidb").skips_leader_guard(5)
    assert get_role("dm-worker").skips_leader_guard(5)


def test_membership_client_resolution(cluster_meta):
    meta = cluster_meta()
    registry = MembershipClientRegistry()
    client = FakeMembershipClient()
    registry.register(meta.namespace, meta.name, MemberType.PD, client)

    assert get_role("pd").membership_client(meta, registry) is client
    assert isinstance(get_role("offline").membership_client(meta), OfflineMembershipClient)
    with pytest.raises(KeyError):
        get_role("tikv").membership_client(meta, registry)
    with pytest.raises(KeyError):
        get_role("tikv").membership_client(meta)


def test_register_and_unregister_custom_role():
    adapter = RoleAdapter("ticdc", tracks_leader=False)
    register_role("ticdc", adapter)
    assert get_role("ticdc") is adapter
    with pytest.raises(ValueError, match="already registered"):
        register_role("ticdc", adapter)

    unregister_role("ticdc")
    assert "ticdc" not in available_roles()
    unregister_role("ticdc")


def test_resolve_member_type_env_indirection(monkeypatch):
    monkeypatch.setenv("MEMBERSCALE_ROLE", "worker")
    member_type, hint = resolve_member_type("env:MEMBERSCALE_ROLE")
    assert member_type is MemberType.DM_WORKER
    assert hint == 'env:MEMBERSCALE_ROLE="worker"'

    monkeypatch.delenv("MEMBERSCALE_ROLE")
    member_type, hint = resolve_member_type("env:MEMBERSCALE_ROLE")
    assert member_type is None
    assert "not set" in hint

    assert normalize_member_type("bogus") is None
    assert normalize_member_type("Store") is MemberType.TIKV
