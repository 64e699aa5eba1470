"""
Public facing controller facades for memberscale.
"""

from .scaling_controller import ScalingController  # noqa: F401

__all__ = ["ScalingController"]
