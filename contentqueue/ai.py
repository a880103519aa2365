"""
Client for an OpenAI-compatible chat completions API.

Every request goes through a ResilientCaller, so generation is protected
by timeout, backoff and the "ai" circuit breaker. Without an API key the
client runs in mock mode and returns deterministic placeholder content.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from .logger import get_logger
from .retry import ResilientCaller

logger = get_logger()

# Approximate GPT-4 Turbo pricing per 1K tokens
PROMPT_COST_PER_1K = 0.01
COMPLETION_COST_PER_1K = 0.03

GENERATE_PROMPT = (
    'Write a comprehensive, SEO-optimized blog post about "{topic}".\n'
    "Include: title, detailed HTML content (with h2/p tags), summary, relevant tags, "
    "seoTitle, and seoDescription.\n"
    "Return valid JSON only."
)


class AIGenerationError(Exception):
    """The AI service answered, but not with usable content."""
    pass


class AIClient:
    def __init__(
        self,
        caller: Optional[ResilientCaller],
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4-turbo-preview",
    ):
        """
        Args:
            caller: Resilient wrapper for outbound requests (unused in mock mode)
            api_key: API key; None or "mock" selects mock mode
            base_url: API root, without trailing slash
            model: Chat model name
        """
        self.caller = caller
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model

        self.usage = {
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "total_tokens": 0,
            "estimated_cost": 0.0,
        }

        if self.mock_mode:
            logger.warning("No valid AI_API_KEY provided. Running in mock mode.")

    @property
    def mock_mode(self) -> bool:
        return not self.api_key or self.api_key == "mock"

    def generate_post(self, topic: str) -> Dict[str, Any]:
        """
        Generate blog post content for a topic.

        Returns:
            Dict with title, content (HTML), summary, tags, seoTitle, seoDescription

        Raises:
            AIGenerationError: If the response is not a usable JSON post
            RetryError / HTTPStatusError / requests errors: From the resilient call
        """
        logger.info(f'Generating post for topic: "{topic}"')
        if self.mock_mode:
            return self._mock_post(topic)

        data = self._chat(GENERATE_PROMPT.format(topic=topic))
        try:
            raw = data["choices"][0]["message"]["content"]
            result = json.loads(raw)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise AIGenerationError(f"AI response could not be parsed: {e}") from e
        if not isinstance(result, dict):
            raise AIGenerationError("AI response was not a JSON object")

        return {
            "title": result.get("title"),
            "content": result.get("content"),
            "summary": result.get("summary") or result.get("seoDescription"),
            "tags": result.get("tags") or [],
            "seoTitle": result.get("seoTitle") or result.get("title"),
            "seoDescription": result.get("seoDescription"),
        }

    def _chat(self, prompt: str) -> Dict[str, Any]:
        response = self.caller.request(
            "POST",
            f"{self.base_url}/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "response_format": {"type": "json_object"},
                "temperature": 0.7,
            },
        )
        try:
            data = response.json()
        except ValueError as e:
            raise AIGenerationError(f"AI response was not JSON: {e}") from e

        if isinstance(data, dict) and data.get("usage"):
            self._track_usage(data["usage"])
        return data

    def _track_usage(self, usage: Dict[str, Any]) -> None:
        prompt_tokens = usage.get("prompt_tokens") or 0
        completion_tokens = usage.get("completion_tokens") or 0
        total_tokens = usage.get("total_tokens") or prompt_tokens + completion_tokens
        cost = (prompt_tokens / 1000) * PROMPT_COST_PER_1K + (completion_tokens / 1000) * COMPLETION_COST_PER_1K

        self.usage["prompt_tokens"] += prompt_tokens
        self.usage["completion_tokens"] += completion_tokens
        self.usage["total_tokens"] += total_tokens
        self.usage["estimated_cost"] += cost

        logger.info(
            f"Tokens: {total_tokens} (Prompt: {prompt_tokens}, Completion: {completion_tokens}), "
            f"Cost: ${cost:.4f}"
        )

    def _mock_post(self, topic: str) -> Dict[str, Any]:
        year = datetime.now().year
        return {
            "title": f"The Ultimate Guide to {topic} ({year})",
            "content": f"<h2>Introduction</h2><p>This comprehensive guide covers everything about {topic}...</p>",
            "summary": f"Complete {year} guide to {topic}. Expert insights and practical tips.",
            "tags": [topic, "Guide", str(year)],
            "seoTitle": f"{topic}: Complete Guide ({year})",
            "seoDescription": f"Master {topic} with our comprehensive guide. Updated for {year}.",
        }
