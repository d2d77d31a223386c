"""
Error taxonomy for a load run.

Only SetupFatal (and its subclasses) stops a run. ActorAbort ends a single
actor's iteration and never leaves the flow runner.
"""

from typing import Optional


class HoldraceError(Exception):
    """Base class for all load-generator errors."""


class SetupFatal(HoldraceError):
    """Bootstrap failed; the whole run must abort before any actor starts."""


class DatasetError(SetupFatal):
    """Token or seat dataset is missing, empty, or malformed."""


class ConfigError(SetupFatal):
    """Run configuration is invalid."""


class ActorAbort(HoldraceError):
    """
    A flow step returned something unexpected.

    `status` is 0 when the request never produced a response
    (connection refused, timeout).
    """

    def __init__(self, step: str, reason: str, status: Optional[int] = None, body: str = ""):
        self.step = step
        self.reason = reason
        self.status = status
        self.body = body
        super().__init__(f"{step}: {reason} (status={status})")


class PollTimeout(ActorAbort):
    """Admission was not granted within the configured deadline."""

    def __init__(self, max_wait: float, polls: int):
        self.max_wait = max_wait
        self.polls = polls
        super().__init__(
            "admission",
            f"no waiting token within {max_wait:.3f}s after {polls} status checks",
        )
