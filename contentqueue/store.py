"""
Durable job store.

Jobs move PENDING -> PROCESSING -> COMPLETED | FAILED and nowhere else.
Every transition is a guarded UPDATE on the current status, so an illegal
edge never reaches the table no matter how many workers share it.
"""

import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine

from .database import (
    COMPLETED,
    FAILED,
    JOB_STATUSES,
    PENDING,
    PROCESSING,
    QueueJob,
    get_session_factory,
    init_database,
)
from .logger import get_logger

logger = get_logger()


class JobStoreError(Exception):
    """Base class for job store errors."""
    pass


class JobNotFoundError(JobStoreError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidTransitionError(JobStoreError):
    """Raised when a status change would break the job lifecycle."""

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")


class JobStore:
    """Job lifecycle operations backed by a SQLAlchemy engine."""

    # A lost compare-and-set means another worker took the candidate; look
    # for the next one a bounded number of times before reporting empty.
    CLAIM_RACE_RETRIES = 3

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = get_session_factory(engine)

    @classmethod
    def from_url(cls, target: Union[str, Path]) -> "JobStore":
        """Open (and create if needed) the store at a URL or SQLite path."""
        return cls(init_database(target))

    def enqueue(self, job_type: str, payload: Optional[Mapping[str, Any]] = None) -> str:
        """
        Schedule a job.

        Args:
            job_type: Discriminator used to select the handler
            payload: JSON-serializable mapping handed to the handler

        Returns:
            The new job's id
        """
        if not isinstance(job_type, str) or not job_type.strip():
            raise ValueError("Job type must be a non-empty string")
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError("Job payload must be a mapping")

        job_id = str(uuid.uuid4())
        with self._session_factory.begin() as session:
            session.add(QueueJob(
                id=job_id,
                type=job_type,
                payload=dict(payload),
                status=PENDING,
                attempts=0,
                created_at=datetime.now(),
            ))

        logger.info("Job enqueued", job_id=job_id, type=job_type)
        return job_id

    def claim_next(self) -> Optional[QueueJob]:
        """
        Atomically take ownership of the oldest PENDING job.

        The candidate is selected FOR UPDATE SKIP LOCKED so concurrent
        workers on PostgreSQL step over each other's rows instead of
        waiting; the status-guarded UPDATE then confirms ownership on every
        backend.

        Returns:
            The claimed job, now PROCESSING, or None if the queue is empty
        """
        for _ in range(self.CLAIM_RACE_RETRIES):
            with self._session_factory.begin() as session:
                candidate_id = session.execute(
                    select(QueueJob.id)
                    .where(QueueJob.status == PENDING)
                    .order_by(QueueJob.created_at, QueueJob.id)
                    .limit(1)
                    .with_for_update(skip_locked=True)
                ).scalar_one_or_none()
                if candidate_id is None:
                    return None

                claimed = session.execute(
                    update(QueueJob)
                    .where(QueueJob.id == candidate_id, QueueJob.status == PENDING)
                    .values(
                        status=PROCESSING,
                        locked_at=datetime.now(),
                        attempts=QueueJob.attempts + 1,
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                if claimed == 1:
                    job = session.get(QueueJob, candidate_id, populate_existing=True)
                    logger.debug("Job claimed", job_id=job.id, type=job.type, attempts=job.attempts)
                    return job

            logger.debug("Lost claim race, retrying", job_id=candidate_id)
        return None

    def complete(self, job_id: str, result: Optional[Mapping[str, Any]] = None) -> None:
        """Mark a PROCESSING job COMPLETED with its result."""
        self._finish(job_id, COMPLETED, result=dict(result or {}))

    def fail(self, job_id: str, error: str) -> None:
        """Mark a PROCESSING job FAILED with an error message."""
        self._finish(job_id, FAILED, error=str(error))

    def _finish(self, job_id: str, status: str, **values) -> None:
        with self._session_factory.begin() as session:
            updated = session.execute(
                update(QueueJob)
                .where(QueueJob.id == job_id, QueueJob.status == PROCESSING)
                .values(status=status, processed_at=datetime.now(), **values)
                .execution_options(synchronize_session=False)
            ).rowcount
            if updated == 1:
                return

            current = session.get(QueueJob, job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            raise InvalidTransitionError(job_id, current.status, status)

    def get(self, job_id: str) -> Optional[QueueJob]:
        """Read-only lookup. The returned job is detached from any session."""
        with self._session_factory() as session:
            return session.get(QueueJob, job_id)

    def status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Status view for callers polling a job: status, attempts, result or error."""
        job = self.get(job_id)
        return job.to_dict() if job is not None else None

    def list_jobs(self, status: Optional[str] = None, limit: int = 50) -> List[QueueJob]:
        """Most recent jobs first, optionally filtered by status."""
        if status is not None and status not in JOB_STATUSES:
            raise ValueError(f"Unknown status: {status}")

        query = select(QueueJob).order_by(QueueJob.created_at.desc(), QueueJob.id.desc()).limit(limit)
        if status is not None:
            query = query.where(QueueJob.status == status)
        with self._session_factory() as session:
            return list(session.scalars(query))

    def find_stuck(self, older_than: timedelta) -> List[QueueJob]:
        """
        PROCESSING jobs locked longer ago than ``older_than``.

        Diagnostic only: a crashed worker's job stays PROCESSING until an
        operator decides what to do with it.
        """
        cutoff = datetime.now() - older_than
        query = (
            select(QueueJob)
            .where(QueueJob.status == PROCESSING, QueueJob.locked_at < cutoff)
            .order_by(QueueJob.locked_at)
        )
        with self._session_factory() as session:
            return list(session.scalars(query))

    def requeue(self, job_id: str) -> str:
        """
        Re-run a FAILED job as a fresh PENDING job.

        The failed job is left untouched.

        Returns:
            The id of the new job
        """
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != FAILED:
            raise InvalidTransitionError(job_id, job.status, PENDING)

        new_id = self.enqueue(job.type, job.payload)
        logger.info("Failed job requeued", job_id=job_id, new_job_id=new_id)
        return new_id

    def counts(self) -> Dict[str, int]:
        """Number of jobs per status."""
        totals = {status: 0 for status in JOB_STATUSES}
        with self._session_factory() as session:
            rows = session.execute(
                select(QueueJob.status, func.count()).group_by(QueueJob.status)
            )
            for status, count in rows:
                totals[status] = count
        return totals
