"""
Channel distribution over webhooks.

Each channel is its own dependency with its own circuit breaker, so one
dead endpoint does not stop the others.
"""

import random
import time
from typing import Callable, Dict, Iterable, List, Optional

import requests

from .config import RetryConfig
from .logger import get_logger
from .retry import BreakerRegistry, ResilientCaller

logger = get_logger()


class UnknownChannelError(ValueError):
    pass


class WebhookDistributor:
    def __init__(
        self,
        webhooks: Dict[str, str],
        breakers: BreakerRegistry,
        retry: Optional[RetryConfig] = None,
        default_channels: Iterable[str] = (),
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            webhooks: Channel name -> webhook URL
            breakers: Registry supplying one breaker per channel
            retry: Backoff policy shared by all channels
            default_channels: Channels used when a job names none
            timeout: Per-request timeout in seconds
        """
        self.webhooks = dict(webhooks)
        self.default_channels = list(default_channels) or sorted(self.webhooks)
        self._breakers = breakers
        self._retry = retry
        self._timeout = timeout
        self._session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng
        self._callers: Dict[str, ResilientCaller] = {}

    def _caller(self, channel: str) -> ResilientCaller:
        caller = self._callers.get(channel)
        if caller is None:
            caller = ResilientCaller(
                self._breakers.get(f"distribution:{channel}"),
                retry=self._retry,
                timeout=self._timeout,
                session=self._session,
                sleep=self._sleep,
                rng=self._rng,
            )
            self._callers[channel] = caller
        return caller

    def publish(self, content_id: str, channel: str) -> None:
        """Deliver one content item to one channel."""
        url = self.webhooks.get(channel)
        if not url:
            raise UnknownChannelError(f"No webhook configured for channel: {channel}")

        self._caller(channel).request(
            "POST",
            url,
            json={"contentId": content_id, "channel": channel},
        )
        logger.info(f"Distributed {content_id} to {channel}")


def distribute(publish: Callable[[str, str], None], content_id: str, channels: List[str]) -> List[str]:
    """
    Publish to every channel, logging and skipping per-channel failures.

    Returns:
        The channels that were attempted
    """
    logger.info(f"Distributing {content_id} to {len(channels)} channel(s)")
    for channel in channels:
        try:
            publish(content_id, channel)
        except Exception as e:
            logger.error(f"Failed to post to {channel}", content_id=content_id, error=str(e))
    return list(channels)
