"""Retention Job Registry

Purpose: Named maintenance jobs triggered by an external scheduler

The engine never schedules anything itself. Cleanup work is registered under
stable names (`behavioral_retention`, `security_event_retention`,
`device_cleanup`) and a cron, worker or admin endpoint runs it by name.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from riskguard.models.exceptions import ValidationError
from riskguard.utils.serialization import utc_now

logger = logging.getLogger(__name__)

JobCallable = Callable[[], Awaitable[Dict[str, Any]]]


class JobStatusEnum(str, Enum):
    """Job status enumeration."""
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobRun:
    """Outcome of one job execution"""
    name: str
    status: JobStatusEnum
    started_at: datetime
    duration_seconds: float
    result: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class JobRegistry:
    """Maps stable job names to async callables."""

    def __init__(self):
        self._jobs: Dict[str, JobCallable] = {}

    def register(self, name: str, job: JobCallable) -> None:
        if not name:
            raise ValidationError("job name must be non-empty")
        if name in self._jobs:
            logger.warning(f"Replacing registered job '{name}'")
        self._jobs[name] = job

    def names(self) -> List[str]:
        return sorted(self._jobs)

    def __contains__(self, name: str) -> bool:
        return name in self._jobs

    async def run(self, name: str) -> JobRun:
        """
        Execute one job by name.

        Job failures are captured on the returned JobRun rather than raised,
        so a scheduler can run every job and report them together.

        Raises:
            ValidationError: If no job is registered under `name`
        """
        job = self._jobs.get(name)
        if job is None:
            raise ValidationError(f"Unknown job '{name}'", context={"available": self.names()})

        started_at = utc_now()
        start = time.monotonic()
        try:
            result = await job()
        except Exception as e:
            logger.error(f"Job '{name}' failed: {e}", exc_info=True)
            return JobRun(name, JobStatusEnum.FAILED, started_at, time.monotonic() - start, error=str(e))

        duration = time.monotonic() - start
        logger.info(f"Job '{name}' completed in {duration:.3f}s: {result}")
        return JobRun(name, JobStatusEnum.COMPLETED, started_at, duration, result=result or {})

    async def run_all(self) -> List[JobRun]:
        return [await self.run(name) for name in self.names()]
