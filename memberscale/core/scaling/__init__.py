"""
Scaling core: step calculation, role adapters and the generic member scaler.
"""

from __future__ import annotations

from .calculator import DesiredTarget, compute_scale_step
from .roles import (
    RoleAdapter,
    available_roles,
    get_role,
    register_role,
    reset_roles,
    unregister_role,
)
from .scaler import FakeScaler, MemberScaler, Scaler, ScalerDependencies, scaler_for

__all__ = [
    "DesiredTarget",
    "compute_scale_step",
    "RoleAdapter",
    "available_roles",
    "get_role",
    "register_role",
    "reset_roles",
    "unregister_role",
    "FakeScaler",
    "MemberScaler",
    "Scaler",
    "ScalerDependencies",
    "scaler_for",
]
