"""Single-job gate.

A worker process serves exactly one job.  The gate is the token the HTTP
layer takes before starting it; once taken it is never handed back, so every
later submission is refused.  ``wait_finished`` lets shutdown wait for the
running job to finish its cleanup.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from coding_worker.worker.models.enums import WorkerStatus


class JobGate:
    def __init__(self) -> None:
        self._status = WorkerStatus.IDLE
        self._job_id: str | None = None
        self._finished = asyncio.Event()

    # -- Mutation --------------------------------------------------------------

    def try_acquire(self, job_id: str) -> bool:
        """Take the gate for *job_id*.  Returns ``False`` if it was already taken."""
        if self._status != WorkerStatus.IDLE:
            logger.warning("Gate: refusing job {} (status={})", job_id, self._status)
            return False
        self._status = WorkerStatus.BUSY
        self._job_id = job_id
        logger.debug("Gate: acquired by job {}", job_id)
        return True

    def mark_terminated(self) -> None:
        """The job finished; the worker will not accept another one."""
        self._status = WorkerStatus.TERMINATED
        self._finished.set()
        logger.debug("Gate: job {} terminated", self._job_id)

    # -- Query -----------------------------------------------------------------

    @property
    def status(self) -> WorkerStatus:
        return self._status

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def is_busy(self) -> bool:
        return self._status == WorkerStatus.BUSY

    async def wait_finished(self, timeout: float | None = None) -> bool:
        """Wait until the running job terminated.  Returns ``True`` if idle or finished."""
        if self._status == WorkerStatus.IDLE:
            return True
        try:
            await asyncio.wait_for(self._finished.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning("Gate: job {} still running after {}s", self._job_id, timeout)
            return False
        return True
