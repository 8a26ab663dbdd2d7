"""
OpenAI wrapper for single-shot text completions.

Features:
    - Hard timeout on every call
    - Token usage tracking
    - Failures surface as ExternalServiceError for callers to absorb

Author: Smart Financial Coach Team
"""

import os
import time
import asyncio
from typing import Optional
from dotenv import load_dotenv

from .errors import ExternalServiceError
from .observability import logger, log_openai_call

load_dotenv()


DEFAULT_TIMEOUT_SECONDS = 20.0


class AIService:
    """
    Thin wrapper around the OpenAI chat completions API.

    There is no retry loop: a failed or timed-out call is reported once and
    the caller decides what to show instead.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        raw_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY", "")
        self.api_key = raw_key.strip() if raw_key else None
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.client = None

        # Token usage tracking
        self.total_tokens_used = 0
        self.request_count = 0

        # Only initialize client if API key is available and valid
        if self.api_key and self.api_key.startswith("sk-"):
            try:
                from openai import AsyncOpenAI
                self.client = AsyncOpenAI(api_key=self.api_key)
                logger.info("OpenAI client initialized", model=self.model)
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client", error=str(e))
                self.client = None
        else:
            logger.debug("OpenAI API key not configured, recommendations will use fallback text")

    def _track_usage(self, response) -> int:
        """Track token usage from API response."""
        tokens = 0
        if hasattr(response, 'usage') and response.usage:
            tokens = response.usage.total_tokens
            self.total_tokens_used += tokens
        self.request_count += 1
        return tokens

    def get_usage_stats(self) -> dict:
        """Get current usage statistics."""
        return {
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
            "avg_tokens_per_request": (
                self.total_tokens_used / self.request_count
                if self.request_count > 0 else 0
            )
        }

    async def complete(
        self,
        prompt: str,
        system_prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> str:
        """
        Run one chat completion and return the stripped text.

        Args:
            prompt: User message.
            system_prompt: Persona and style instructions.
            max_tokens: Upper bound on generated tokens.
            temperature: Sampling temperature.
            timeout: Seconds before the call is abandoned.

        Raises:
            ExternalServiceError: No client configured, network or API error,
                timeout, or empty output.
        """
        if not self.client:
            raise ExternalServiceError("OpenAI client not configured")

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(f"OpenAI call timed out after {timeout:.0f}s") from e
        except Exception as e:
            raise ExternalServiceError(f"OpenAI call failed: {e}") from e

        tokens = self._track_usage(response)
        log_openai_call(self.model, tokens, (time.perf_counter() - start) * 1000)

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ExternalServiceError("Malformed completion response") from e

        text = (content or "").strip()
        if not text:
            raise ExternalServiceError("Empty completion")
        return text

    async def check_connection(self) -> bool:
        """Check if OpenAI API is accessible."""
        if not self.client:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception:
            return False
