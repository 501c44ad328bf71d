"""Wall-clock deadlines shared by the optimizer stages and the pipeline."""

from __future__ import annotations

import time
from typing import Optional


def deadline_from_budget(seconds: Optional[float]) -> Optional[float]:
    """Absolute time.monotonic() deadline, or None for no budget."""
    if seconds is None:
        return None
    return time.monotonic() + float(seconds)


def expired(deadline: Optional[float]) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())
