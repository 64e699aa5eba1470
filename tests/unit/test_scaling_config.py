from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from memberscale.core.config import get_scaling_config, reset_scaling_config
from memberscale.core.scaling import available_roles, get_role
from memberscale.core.scaling.roles import RoleAdapter

CUSTOM_ROLE_MODULE = dedent(
    """
    from memberscale.core.scaling.roles import RoleAdapter, offline_client

    ticdc = RoleAdapter("ticdc", tracks_leader=False)


    def make_pump():
        return RoleAdapter("pump", client_factory=offline_client, tracks_leader=False)


    class NotARole:
        pass
    """
)


def _write_config(tmp_path: Path, body: str) -> Path:
    config_file = tmp_path / "memberscale.yaml"
    config_file.write_text(dedent(body), encoding="utf-8")
    return config_file


@pytest.fixture
def role_module(tmp_path: Path, monkeypatch):
    (tmp_path / "custom_roles.py").write_text(CUSTOM_ROLE_MODULE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    return "custom_roles"


def test_bundled_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = get_scaling_config()

    assert cfg.delete_slots_annotation == "memberscale.io/delete-slots"
    assert cfg.defer_deleting_annotation == "memberscale.io/pvc-defer-deleting"
    assert cfg.max_passes == 32
    assert cfg.update_retry.attempts == 4
    assert cfg.roles == []
    assert get_scaling_config() is cfg


def test_env_config_overrides(tmp_path: Path, monkeypatch):
    config_file = _write_config(
        tmp_path,
        """
        scaling:
          delete_slots_annotation: example.com/delete-slots
          requeue_interval: 0.5
          max_passes: 8
          update_retry:
            attempts: 2
            initial_delay: 0
        """,
    )
    monkeypatch.setenv("MEMBERSCALE_CONFIG", str(config_file))
    reset_scaling_config()

    cfg = get_scaling_config()
    assert cfg.delete_slots_annotation == "example.com/delete-slots"
    assert cfg.defer_deleting_annotation == "memberscale.io/pvc-defer-deleting"
    assert cfg.requeue_interval == 0.5
    assert cfg.max_passes == 8
    assert cfg.update_retry.attempts == 2
    assert cfg.update_retry.initial_delay == 0.0


def test_cwd_config_file(tmp_path: Path, monkeypatch):
    _write_config(tmp_path, "scaling:\n  max_passes: 3\n")
    monkeypatch.chdir(tmp_path)
    assert get_scaling_config().max_passes == 3


def test_load_custom_roles(tmp_path: Path, monkeypatch, role_module):
    config_file = _write_config(
        tmp_path,
        f"""
        scaling:
          roles:
            - name: ticdc
              import: {role_module}:ticdc
            - name: pump
              import: {role_module}:make_pump
        """,
    )
    monkeypatch.setenv("MEMBERSCALE_CONFIG", str(config_file))
    reset_scaling_config()

    cfg = get_scaling_config()
    assert [entry.name for entry in cfg.roles] == ["ticdc", "pump"]
    assert {"ticdc", "pump"} <= set(available_roles())
    assert isinstance(get_role("ticdc"), RoleAdapter)
    assert get_role("pump").client_factory is not None


def test_disable_role(tmp_path: Path, monkeypatch):
    config_file = _write_config(
        tmp_path,
        """
        scaling:
          roles:
            - name: tidb
              enabled: false
        """,
    )
    monkeypatch.setenv("MEMBERSCALE_CONFIG", str(config_file))
    reset_scaling_config()
    get_scaling_config()

    assert "tidb" not in available_roles()
    with pytest.raises(ValueError):
        get_role("tidb")

    reset_scaling_config()
    assert "tidb" in available_roles()


@pytest.mark.parametrize(
    "body, message",
    [
        ("scaling: []\n", "must be a mapping"),
        ("scaling:\n  max_passes: 0\n", "max_passes"),
        ("scaling:\n  requeue_interval: -1\n", "requeue_interval"),
        ("scaling:\n  roles:\n    - enabled: true\n", "non-empty 'name'"),
        ("scaling:\n  roles:\n    - name: x\n      import: no_colon\n", "module:attr"),
        ("scaling:\n  update_retry:\n    attempts: 0\n", "attempts"),
    ],
)
def test_invalid_config(tmp_path: Path, monkeypatch, body, message):
    config_file = _write_config(tmp_path, body)
    monkeypatch.setenv("MEMBERSCALE_CONFIG", str(config_file))
    reset_scaling_config()

    with pytest.raises(ValueError, match=message):
        get_scaling_config()


def test_import_must_produce_role_adapter(tmp_path: Path, monkeypatch, role_module):
    config_file = _write_config(
        tmp_path,
        f"""
        scaling:
          roles:
            - name: broken
              import: {role_module}:NotARole
        """,
    )
    monkeypatch.setenv("MEMBERSCALE_CONFIG", str(config_file))
    reset_scaling_config()

    with pytest.raises(TypeError):
        get_scaling_config()
