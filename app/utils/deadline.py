import math
import time
from typing import Optional

from app.core.errors import DeadlineExceeded, ValidationError


class Deadline:
    """A point on the monotonic clock after which work must be abandoned."""

    def __init__(self, expires_at: float):
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: Optional[float]) -> Optional["Deadline"]:
        if seconds is None:
            return None
        if not math.isfinite(seconds) or seconds <= 0:
            raise ValidationError("timeout must be a positive number of seconds")
        return cls(time.monotonic() + seconds)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        if self.expired:
            raise DeadlineExceeded(f"{operation} exceeded its deadline")


def check_deadline(deadline: Optional[Deadline], operation: str) -> None:
    if deadline is not None:
        deadline.check(operation)
