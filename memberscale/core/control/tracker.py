"""
Request tracker used by fake collaborators to inject errors.
"""

from __future__ import annotations

from typing import Optional


class RequestTracker:
    """
    Count requests and return an injected error once ``after`` requests passed.

    ``after=0`` fails the very next request. The error fires once and the tracker
    resets itself, so a retry sees a healthy collaborator again unless ``sticky``
    is set.
    """

    def __init__(self) -> None:
        self.requests = 0
        self.err: Optional[BaseException] = None
        self.after = 0
        self.sticky = False

    def set_error(self, err: BaseException, *, after: int = 0, sticky: bool = False) -> "RequestTracker":
        self.err = err
        self.after = after
        self.sticky = sticky
        return self

    def error_ready(self) -> bool:
        return self.err is not None and self.requests >= self.after

    def inc(self) -> None:
        self.requests += 1

    def reset(self) -> None:
        self.err = None
        self.after = 0
        self.sticky = False

    def check(self) -> None:
        """Count the request and raise the injected error if it is due."""
        ready = self.error_ready()
        err = self.err
        self.inc()
        if ready and err is not None:
            if not self.sticky:
                self.reset()
            raise err
