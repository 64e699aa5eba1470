"""
Core package bootstrap for the memberscale runtime.

Re-exports the primary façade so callers can simply do::

    from memberscale.core import ScalingController
"""

from __future__ import annotations

from memberscale.core.controllers.scaling_controller import ScalingController

__all__ = ["ScalingController"]
