"""Configuration helpers for memberscale.

This module loads optional YAML configuration files to customize runtime
behaviour such as annotation keys, retry backoff and custom roles.
Configuration precedence:

1. Environment variable ``MEMBERSCALE_CONFIG`` pointing to a YAML file.
2. ``memberscale.yaml`` in the current working directory.
3. Built-in defaults bundled with the package (``config/default.yaml``).
"""

from __future__ import annotations

import importlib
import inspect
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from memberscale.config.policy import DEFER_DELETING_ANNOTATION, DELETE_SLOTS_ANNOTATION
from memberscale.core.control.retry import RetryPolicy
from memberscale.core.scaling.roles import RoleAdapter, register_role, reset_roles, unregister_role

__all__ = [
    "RoleConfigEntry",
    "ScalingConfig",
    "get_scaling_config",
    "reset_scaling_config",
]


_ENV_VAR = "MEMBERSCALE_CONFIG"
_CWD_FILE = "memberscale.yaml"


@dataclass
class RoleConfigEntry:
    name: str
    import_path: Optional[str] = None
    enabled: bool = True


@dataclass
class ScalingConfig:
    delete_slots_annotation: str = DELETE_SLOTS_ANNOTATION
    defer_deleting_annotation: str = DEFER_DELETING_ANNOTATION
    requeue_interval: float = 1.0
    max_passes: int = 32
    update_retry: RetryPolicy = field(default_factory=RetryPolicy)
    roles: List[RoleConfigEntry] = field(default_factory=list)


_scaling_config: Optional[ScalingConfig] = None


def _resolve_config_path() -> Optional[Path]:
    env_path = os.environ.get(_ENV_VAR)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate.is_file():
            return candidate

    cwd_file = Path.cwd() / _CWD_FILE
    if cwd_file.is_file():
        return cwd_file
    return None


def _load_yaml_dict() -> Dict[str, object]:
    path = _resolve_config_path()
    if path is not None:
        with path.open("r", encoding="utf-8") as fh:
            return yaml.safe_load(fh) or {}

    # Fallback to bundled default configuration
    from importlib import resources

    with resources.files("memberscale.config").joinpath("default.yaml").open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _coerce_role_entry(raw: Dict[str, object]) -> RoleConfigEntry:
    name = str(raw.get("name", "")).strip()
    if not name:
        raise ValueError("Role entry requires a non-empty 'name'")
    import_path = raw.get("import")
    if import_path is not None:
        import_path = str(import_path).strip()
    enabled = bool(raw.get("enabled", True))
    return RoleConfigEntry(name=name, import_path=import_path, enabled=enabled)


def _build_scaling_config(data: Dict[str, object]) -> ScalingConfig:
    node = data.get("scaling", {})
    if node is None:
        node = {}
    if not isinstance(node, dict):
        raise ValueError("'scaling' section must be a mapping")

    defaults = ScalingConfig()
    retry_node = node.get("update_retry", {}) or {}
    if not isinstance(retry_node, dict):
        raise ValueError("'update_retry' must be a mapping")

    raw_entries = node.get("roles", [])
    entries: List[RoleConfigEntry] = []
    if isinstance(raw_entries, list):
        for item in raw_entries:
            if not isinstance(item, dict):
                raise ValueError("Each role definition must be a mapping")
            entries.append(_coerce_role_entry(item))
    elif raw_entries:
        raise ValueError("'roles' must be a list of mappings")

    max_passes = int(node.get("max_passes", defaults.max_passes))
    if max_passes < 1:
        raise ValueError(f"'max_passes' must be >= 1, got {max_passes}")
    requeue_interval = float(node.get("requeue_interval", defaults.requeue_interval))
    if requeue_interval < 0:
        raise ValueError(f"'requeue_interval' must be non-negative, got {requeue_interval}")

    return ScalingConfig(
        delete_slots_annotation=str(node.get("delete_slots_annotation", defaults.delete_slots_annotation)).strip()
        or defaults.delete_slots_annotation,
        defer_deleting_annotation=str(node.get("defer_deleting_annotation", defaults.defer_deleting_annotation)).strip()
        or defaults.defer_deleting_annotation,
        requeue_interval=requeue_interval,
        max_passes=max_passes,
        update_retry=RetryPolicy.from_dict(retry_node),
        roles=entries,
    )


def _coerce_role_adapter(obj: object) -> RoleAdapter:
    if isinstance(obj, RoleAdapter):
        return obj
    if callable(obj) and not inspect.isclass(obj):
        instance = obj()
        if isinstance(instance, RoleAdapter):
            return instance
        raise TypeError("Role factory must return a RoleAdapter")
    raise TypeError("Role import must point at a RoleAdapter instance or a factory returning one")


def _apply_scaling_config(config: ScalingConfig) -> None:
    for entry in config.roles:
        if not entry.enabled:
            unregister_role(entry.name)
            continue
        if entry.import_path:
            module_name, sep, attr = entry.import_path.partition(":")
            if not sep:
                raise ValueError(
                    f"Invalid import path '{entry.import_path}'. Expected format 'module:attr'."
                )
            module = importlib.import_module(module_name)
            adapter = _coerce_role_adapter(getattr(module, attr))
            register_role(entry.name, adapter, replace=True)


def get_scaling_config() -> ScalingConfig:
    global _scaling_config
    if _scaling_config is None:
        raw = _load_yaml_dict()
        config = _build_scaling_config(raw)
        _apply_scaling_config(config)
        _scaling_config = config
    return _scaling_config


def reset_scaling_config() -> None:
    """Reset cached scaling configuration (intended for tests)."""
    global _scaling_config
    _scaling_config = None
    reset_roles()
