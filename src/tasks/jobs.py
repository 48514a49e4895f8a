"""
In-process background job queue for the recommendation rebuilds.

Each submitted job runs as an asyncio task and gets its own cancel event,
which the batch engines check between items. Handles stay queryable after
completion until they age out of the bounded history.
"""
import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.config.constants import JobStatus
from src.config.settings import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobHandle:
    name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Any = None
    error: Optional[str] = None
    # False when the job function was not handed the cancel event
    cancellable: bool = True
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def cancel(self) -> bool:
        """Request cooperative cancellation. Returns False if finished or not cancellable."""
        if self.done or not self.cancellable:
            return False
        self.cancel_event.set()
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "cancellable": self.cancellable,
            "cancel_requested": self.cancel_event.is_set(),
            "result": self.result,
            "error": self.error,
        }


JobFunction = Callable[..., Awaitable[Any]]


class JobManager:
    def __init__(self, history_limit: int = settings.JOB_HISTORY_LIMIT):
        self.history_limit = history_limit
        self._jobs: "OrderedDict[str, JobHandle]" = OrderedDict()
        self.logger = logging.getLogger(__name__)

    def submit(self, name: str, job_fn: JobFunction, *args, **kwargs) -> JobHandle:
        """
        Start a job in the background.

        job_fn is awaited as job_fn(*args, cancel_event=..., **kwargs) when it
        accepts a cancel event (pass accepts_cancel=False otherwise).
        """
        accepts_cancel = kwargs.pop("accepts_cancel", True)
        handle = JobHandle(name=name, cancellable=accepts_cancel)
        if accepts_cancel:
            kwargs["cancel_event"] = handle.cancel_event

        handle.task = asyncio.create_task(self._run(handle, job_fn, args, kwargs))
        self._jobs[handle.id] = handle
        self._prune()

        self.logger.info(f"Submitted job {name} ({handle.id})")
        return handle

    async def _run(self, handle: JobHandle, job_fn: JobFunction, args, kwargs) -> None:
        handle.status = JobStatus.RUNNING
        handle.started_at = _utcnow()

        try:
            handle.result = await job_fn(*args, **kwargs)
            if handle.cancel_event.is_set():
                handle.status = JobStatus.CANCELLED
            else:
                handle.status = JobStatus.COMPLETED
        except asyncio.CancelledError:
            handle.status = JobStatus.CANCELLED
            raise
        except Exception as e:
            handle.status = JobStatus.FAILED
            handle.error = str(e)
            self.logger.error(f"Job {handle.name} ({handle.id}) failed: {e}", exc_info=True)
        finally:
            handle.finished_at = _utcnow()
            self.logger.info(
                f"Job {handle.name} ({handle.id}) finished with status {handle.status.value}"
            )

    def _prune(self) -> None:
        # Drop the oldest finished jobs first; running jobs are never dropped
        while len(self._jobs) > self.history_limit:
            oldest_done = next((job_id for job_id, h in self._jobs.items() if h.done), None)
            if oldest_done is None:
                break
            del self._jobs[oldest_done]

    def get(self, job_id: str) -> Optional[JobHandle]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[JobHandle]:
        """All tracked jobs, newest first."""
        return list(reversed(self._jobs.values()))

    def cancel(self, job_id: str) -> Optional[JobHandle]:
        handle = self._jobs.get(job_id)
        if handle is not None and handle.cancel():
            self.logger.info(f"Cancellation requested for job {handle.name} ({job_id})")
        return handle

    async def wait(self, job_id: str) -> Optional[JobHandle]:
        handle = self._jobs.get(job_id)
        if handle is not None and handle.task is not None:
            await asyncio.gather(handle.task, return_exceptions=True)
        return handle

    async def shutdown(self) -> None:
        """Ask running jobs to stop and wait for them."""
        running = [h for h in self._jobs.values() if not h.done and h.task is not None]
        for handle in running:
            handle.cancel()
        if running:
            await asyncio.gather(*(h.task for h in running), return_exceptions=True)


job_manager = JobManager()
