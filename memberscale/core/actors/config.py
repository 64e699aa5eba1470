"""
Shared configuration dataclasses for reconcile actors.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ActorConfig:
    """
    Generic configuration for reconcile workers.

    ``metadata`` carries free-form switches, e.g. ``{"scaler": "fake"}`` to run
    the side-effect-free scaler.
    """

    name: str
    namespace: str | None = None
    max_restarts: int = -1
    max_task_retries: int = 0
    metadata: dict[str, str] = field(default_factory=dict)
