"""
In-memory job registry.

Job records live only as long as the process. Each record is written by
its own pipeline task on the event loop. The lock protects the mapping for
the sync handlers (/health, /metrics) that FastAPI runs in its threadpool.
"""

import threading
from collections import Counter
from typing import Dict, Optional

from .models import Job


class JobRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}

    def create(self, job: Job):
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def count_by_status(self) -> Dict[str, int]:
        """Job counts per status value, e.g. {'processing': 2, 'completed': 5}."""
        with self._lock:
            return dict(Counter(job.status.value for job in self._jobs.values()))

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
