"""
Job dispatch: route a claimed job to its handler and record the outcome.

Handlers take the job payload and return a result mapping. They signal
failure by raising; the message becomes the job's error. The dispatcher
never retries: a handler that wants retries uses a ResilientCaller.
"""

import json
from typing import Any, Callable, Dict, List, Mapping, Optional

from .database import QueueJob
from .logger import get_logger
from .store import JobStore

logger = get_logger()

Handler = Callable[[Dict[str, Any]], Optional[Mapping[str, Any]]]


class HandlerRegistry:
    """Maps job type identifiers to handler callables."""

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}

    def register(self, job_type: str, handler: Handler) -> None:
        if not job_type:
            raise ValueError("Job type must be a non-empty string")
        if job_type in self._handlers:
            raise ValueError(f"Handler already registered for job type: {job_type}")
        self._handlers[job_type] = handler

    def handler(self, job_type: str) -> Callable[[Handler], Handler]:
        """Decorator form of register()."""
        def decorator(func: Handler) -> Handler:
            self.register(job_type, func)
            return func
        return decorator

    def get(self, job_type: str) -> Optional[Handler]:
        return self._handlers.get(job_type)

    def types(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


class Dispatcher:
    """Runs one claimed job to a terminal state."""

    def __init__(self, store: JobStore, registry: HandlerRegistry):
        self.store = store
        self.registry = registry

    def dispatch(self, job: QueueJob) -> None:
        """
        Execute the handler for ``job`` and write COMPLETED or FAILED.

        Handler exceptions are captured into the job record. Only store
        errors (engine defects) propagate to the caller.
        """
        logger.record_job_claimed(job.type)
        logger.info(f"Processing job [{job.id}] type: {job.type}", attempts=job.attempts)

        handler = self.registry.get(job.type)
        if handler is None:
            message = f"unknown job type: {job.type}"
            logger.error(f"Job [{job.id}] failed: {message}")
            logger.record_job_failed(job.type, "UnknownJobType")
            self.store.fail(job.id, message)
            return

        try:
            result = handler(dict(job.payload or {}))
            if result is None:
                result = {}
            if not isinstance(result, Mapping):
                raise TypeError(
                    f"Handler for {job.type} returned {type(result).__name__}, expected a mapping"
                )
            result = dict(result)
            # Stored in a JSON column; reject what cannot be written there.
            json.dumps(result)
        except Exception as e:
            message = _error_message(e)
            logger.error(f"Job [{job.id}] failed: {message}", type=job.type)
            logger.record_job_failed(job.type, type(e).__name__)
            self.store.fail(job.id, message)
            return

        self.store.complete(job.id, result)
        logger.record_job_completed(job.type)
        logger.info(f"Job [{job.id}] completed", type=job.type)
