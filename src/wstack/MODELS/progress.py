"""
Models for progress messages and build log events.
"""
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict

TICK_ICON = "✓"
CROSS_ICON = "✗"

class ProcessState(BaseModel):
    """
    One message delivered to a progress sink.
    """
    name: str
    type: str = "image"
    state: str
    detail: str = ""
    done: bool = False
    icon: str = ""
    percent: Optional[int] = None

class BuildLogEvent(BaseModel):
    """
    Normalized build log event: either a step description or an error, never both.
    """
    model_config = ConfigDict(frozen=True)

    step: str = ""
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "BuildLogEvent":
        return cls(step="", error=message)

    @property
    def is_error(self) -> bool:
        return self.error is not None

class PullProgress:
    """
    Completion percentage for one image, derived from cumulative byte counters.
    The value never decreases.
    """
    def __init__(self):
        self.current = 0

    def update(self, current, total) -> Optional[int]:
        """
        Recomputes the percentage from a progress detail.

        :param current: Bytes done so far as reported by the daemon.
        :param total: Total bytes as reported by the daemon.
        :return: The new percentage if it increased, otherwise None.
        """
        try:
            current = float(current)
            total = float(total)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(current) and math.isfinite(total)):
            return None
        if total <= 0 or current < 0:
            return None
        ratio = current * 100 / total
        if not math.isfinite(ratio):
            return None
        percent = min(int(ratio), 100)
        if percent <= self.current:
            return None
        self.current = percent
        return percent

    def complete(self) -> int:
        self.current = 100
        return self.current
