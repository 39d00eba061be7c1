"""
Named pacing values for the pipeline.

The external services are rate limited, so every stage waits a fixed
amount between calls. Tests swap `sleep` for a no-op recorder.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from . import config

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class BackoffPolicy:
    variation_delay: float = config.VARIATION_DELAY
    video_delay: float = config.VIDEO_DELAY
    poll_interval: float = config.POLL_INTERVAL
    max_poll_attempts: int = config.MAX_POLL_ATTEMPTS
    # attempts after which the progress estimate reaches 100% (10 minutes at 5s)
    expected_poll_attempts: int = 120
    sleep: Sleep = field(default=asyncio.sleep, repr=False)

    def estimate_percent(self, attempt: int) -> float:
        """Linear progress guess for a poll attempt, never reaching 100."""
        if self.expected_poll_attempts <= 0:
            return 99.0
        return min(attempt * 100.0 / self.expected_poll_attempts, 99.0)
