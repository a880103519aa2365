"""
Retry logic with exponential backoff and circuit breaking for outbound calls.

Handlers that talk to unreliable external services (the AI generation API,
distribution webhooks) wrap each logical call in a ResilientCaller. Every
attempt consults and updates the same per-dependency CircuitBreaker.
"""

import random
import time
from typing import Callable, Dict, Optional

import requests

from .config import BreakerConfig, RetryConfig
from .logger import get_logger

logger = get_logger()

JITTER_RATIO = 0.2


class RetryError(Exception):
    """Base class for resilience-layer failures."""
    pass


class CircuitOpenError(RetryError):
    """Raised when a call is rejected because the breaker is OPEN."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker '{name}' is OPEN. Service unavailable. "
            f"Retry after {retry_after:.0f}s"
        )


class HTTPStatusError(Exception):
    """An HTTP response with an error status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class RetryableHTTPError(HTTPStatusError):
    """408, 429 or 5xx: worth another attempt."""


class NonRetryableHTTPError(HTTPStatusError):
    """Any other 4xx: the request itself is wrong."""


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True for request timeout, rate limiting and server errors
    """
    return status_code in (408, 429) or 500 <= status_code <= 599


def is_retryable(exception: BaseException) -> bool:
    """
    Classify a failure as transient (retry) or permanent (surface now).

    Network errors, timeouts and retryable HTTP statuses are transient.
    Everything else, including programming errors, is not.
    """
    if isinstance(exception, CircuitOpenError):
        return False
    if isinstance(exception, HTTPStatusError):
        return isinstance(exception, RetryableHTTPError)
    if isinstance(exception, requests.exceptions.HTTPError):
        response = exception.response
        return response is not None and should_retry_http_status(response.status_code)
    if isinstance(exception, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    return isinstance(exception, (TimeoutError, ConnectionError))


def compute_backoff_delay(
    attempt: int,
    config: RetryConfig,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Delay in milliseconds before retry number ``attempt`` (0-indexed).

    delay = min(initial_delay * backoff_multiplier ** attempt, max_delay),
    perturbed by up to +/-20% jitter and floored to a non-negative integer.
    """
    rng = rng or random
    delay = min(config.initial_delay * config.backoff_multiplier ** attempt, config.max_delay)
    jitter = delay * JITTER_RATIO * (rng.random() * 2 - 1)
    return max(0, int(delay + jitter))


class CircuitBreaker:
    """
    Circuit breaker pattern to prevent repeated calls to failing services.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests are blocked
    - HALF_OPEN: Testing if service has recovered

    State is held in process memory only; sibling worker processes each
    keep their own breaker.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        success_threshold: int = 2,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Dependency this breaker protects (used in logs and errors)
            failure_threshold: Consecutive failures before opening circuit
            success_threshold: Successful trials in HALF_OPEN before closing
            reset_timeout: Seconds to wait in OPEN before allowing a trial
            clock: Monotonic time source in seconds
        """
        self._name = name
        self._failure_threshold = failure_threshold
        self._success_threshold = success_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = self.CLOSED

    @classmethod
    def from_config(cls, name: str, config: BreakerConfig, **kwargs) -> "CircuitBreaker":
        return cls(
            name=name,
            failure_threshold=config.failure_threshold,
            success_threshold=config.success_threshold,
            reset_timeout=config.reset_timeout,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def success_threshold(self) -> int:
        return self._success_threshold

    @property
    def reset_timeout(self) -> float:
        return self._reset_timeout

    def allow_request(self) -> bool:
        """
        Decide whether a call may proceed.

        An OPEN breaker whose reset timeout has elapsed moves to HALF_OPEN
        and lets this call through as a trial.
        """
        if self.state != self.OPEN:
            return True
        if self._should_attempt_reset():
            logger.info("Circuit breaker transitioning to HALF_OPEN", breaker=self._name)
            self.state = self.HALF_OPEN
            self.success_count = 0
            return True
        return False

    def call(self, func: Callable, *args, **kwargs):
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitOpenError: If circuit is OPEN
            Original exception: If function fails in CLOSED/HALF_OPEN state
        """
        if not self.allow_request():
            raise CircuitOpenError(self._name, self.time_until_reset())

        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self):
        self.failure_count = 0

        if self.state == self.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self._success_threshold:
                logger.info("Circuit breaker transitioning to CLOSED", breaker=self._name)
                self.state = self.CLOSED
                self.success_count = 0

    def record_failure(self):
        """Record failure and potentially open circuit."""
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker trial failed, reopening", breaker=self._name)
            self._open()
            return

        self.failure_count += 1
        if self.state == self.CLOSED and self.failure_count >= self._failure_threshold:
            logger.error(
                f"Circuit breaker opening after {self.failure_count} failures",
                breaker=self._name,
            )
            self._open()

    def _open(self):
        self.state = self.OPEN
        self.failure_count = 0
        self.success_count = 0

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._clock() - self.last_failure_time >= self._reset_timeout

    def time_until_reset(self) -> float:
        """Seconds until an OPEN circuit will allow a trial call."""
        if self.state != self.OPEN or self.last_failure_time is None:
            return 0
        elapsed = self._clock() - self.last_failure_time
        return max(0, self._reset_timeout - elapsed)

    def reset(self):
        """Manually reset the circuit breaker."""
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        self.state = self.CLOSED

    def snapshot(self) -> dict:
        return {
            "name": self._name,
            "state": self.state,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "retry_after": round(self.time_until_reset(), 1),
        }


class BreakerRegistry:
    """Process-local breakers, one per protected dependency."""

    def __init__(self, config: Optional[BreakerConfig] = None):
        self._config = config or BreakerConfig()
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker.from_config(name, self._config)
            self._breakers[name] = breaker
        return breaker

    def snapshot(self) -> list:
        return [b.snapshot() for b in self._breakers.values()]


class ResilientCaller:
    """
    Wraps one logical external call with timeout, retry and circuit breaking.

    A retry sequence makes at most ``max_retries + 1`` attempts. Every
    failure counts against the breaker, but only retryable failures are
    retried. The last error is re-raised once retries are exhausted. An
    OPEN breaker ends the sequence immediately with CircuitOpenError.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        retry: Optional[RetryConfig] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        on_retry: Optional[Callable[[int, Exception, int], None]] = None,
    ):
        """
        Args:
            breaker: Breaker for the dependency being called
            retry: Backoff policy (defaults to RetryConfig())
            timeout: Per-request timeout in seconds for request()
            session: requests session used by request()
            sleep: Sleep function taking seconds
            rng: Random source for jitter
            on_retry: Optional callback(attempt, exception, delay_ms)
        """
        self.breaker = breaker
        self.retry = retry or RetryConfig()
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng
        self._on_retry = on_retry

    def call(self, func: Callable, *args, **kwargs):
        """Invoke func under the retry and breaker policy."""
        max_retries = self.retry.max_retries

        for attempt in range(max_retries + 1):
            if not self.breaker.allow_request():
                logger.record_circuit_rejection()
                logger.warning("Circuit breaker is OPEN, rejecting request", breaker=self.breaker.name)
                raise CircuitOpenError(self.breaker.name, self.breaker.time_until_reset())

            logger.record_external_call()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                self.breaker.record_failure()
                if not is_retryable(e):
                    raise
                if attempt >= max_retries:
                    logger.error(
                        f"Request failed after {attempt + 1} attempts",
                        breaker=self.breaker.name,
                        error=str(e),
                    )
                    raise

                delay = compute_backoff_delay(attempt, self.retry, self._rng)
                logger.record_retry()
                logger.warning(
                    f"Request failed, retrying in {delay}ms (attempt {attempt + 1}/{max_retries})",
                    breaker=self.breaker.name,
                    error=str(e),
                )
                if self._on_retry:
                    self._on_retry(attempt + 1, e, delay)
                self._sleep(delay / 1000)
                continue

            self.breaker.record_success()
            return result

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """
        Issue an HTTP request under the policy.

        Error statuses are raised as RetryableHTTPError or
        NonRetryableHTTPError so they are classified before retrying.
        """
        kwargs.setdefault("timeout", self.timeout)

        def _send() -> requests.Response:
            response = self.session.request(method, url, **kwargs)
            if response.status_code >= 400:
                raise _status_error(self.breaker.name, response)
            return response

        return self.call(_send)


def _status_error(name: str, response: requests.Response) -> HTTPStatusError:
    detail = response.reason or ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            detail = error["message"]
        elif isinstance(error, str):
            detail = error

    message = f"{name} request failed ({response.status_code}): {detail}"
    if should_retry_http_status(response.status_code):
        return RetryableHTTPError(response.status_code, message)
    return NonRetryableHTTPError(response.status_code, message)
