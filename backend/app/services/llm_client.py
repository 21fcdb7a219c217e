"""
Client for an OpenAI-compatible chat completions API

Only rate-limit responses are retried; every other failure is classified into
the LLMError hierarchy and surfaced to the caller.
"""
import asyncio
import hashlib
import json
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.logging_config import LoggingConfig
from app.core.metrics import (llm_errors_total, llm_request_duration_seconds,
                              llm_requests_total, llm_tokens_total)
from app.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)


class LLMError(Exception):
    """Base exception for LLM failures"""

    error_type = "llm_error"
    status_code = 500
    user_message = "The AI assistant ran into a problem. Please try again."

    def to_payload(self) -> Dict[str, Any]:
        """Error body returned to API clients"""
        payload: Dict[str, Any] = {
            "error": str(self) or self.user_message,
            "errorType": self.error_type,
            "userMessage": self.user_message,
        }
        if self.status_code == 429:
            payload["retryAfter"] = 30
        return payload


class LLMRateLimitError(LLMError):
    error_type = "rate_limit"
    status_code = 429
    user_message = "The AI assistant is busy right now. Please wait a moment and try again."


class LLMTimeoutError(LLMError):
    error_type = "timeout"
    status_code = 504
    user_message = "The AI assistant took too long to respond. Please try again."


class LLMConnectionError(LLMError):
    error_type = "connection"
    status_code = 503
    user_message = "The AI assistant is currently unreachable. Please try again later."


class LLMNotConfiguredError(LLMError):
    error_type = "not_configured"
    status_code = 503
    user_message = "The AI assistant is not available on this server."


class LLMResponse(BaseModel):
    """Completion result"""
    text: str
    model: str
    usage: Dict[str, int] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    """Cached deterministic completion"""
    response: LLMResponse
    timestamp: datetime


class RateLimiter:
    """
    Sliding-window request limiter

    Keeps the timestamps of recent requests per key and waits until the oldest
    one leaves the window when the limit is reached.
    """

    def __init__(self, max_requests: int, window_seconds: float):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._requests[key]
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        return window

    def wait_time(self, key: str) -> float:
        """Seconds until a request under key would be allowed"""
        now = time.monotonic()
        window = self._prune(key, now)
        if len(window) < self.max_requests:
            return 0.0
        return max(0.0, self.window_seconds - (now - window[0]))

    async def acquire(self, *keys: str):
        """Wait until every key has room, then record the request under each"""
        async with self._lock:
            while True:
                delay = max((self.wait_time(key) for key in keys), default=0.0)
                if delay <= 0:
                    break
                logger.info(f"LLM rate limit reached, waiting {delay:.2f}s", extra={"keys": list(keys)})
                await asyncio.sleep(delay)
            now = time.monotonic()
            for key in keys:
                self._requests[key].append(now)


class LLMClient:
    """
    Async client for POST {base_url}/chat/completions

    Settings are loaded lazily so tests can construct the client without a
    configured provider.
    """

    GLOBAL_KEY = "__global__"

    def __init__(self):
        self._settings = None
        self._client: Optional[httpx.AsyncClient] = None
        self._rate_limiter: Optional[RateLimiter] = None
        self.cache: Dict[str, CacheEntry] = {}
        self.cache_ttl = timedelta(hours=1)
        self.cache_max_entries = 256

    @property
    def settings(self):
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = RateLimiter(
                self.settings.llm_rate_limit_requests,
                self.settings.llm_rate_limit_window_seconds,
            )
        return self._rate_limiter

    @property
    def is_configured(self) -> bool:
        return self.settings.llm_configured

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.llm_base_url.rstrip("/"),
                timeout=float(self.settings.llm_timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    def _get_cache_key(self, model: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        key_data = json.dumps({"model": model, "messages": messages, "max_tokens": max_tokens}, sort_keys=True)
        return hashlib.sha256(key_data.encode()).hexdigest()

    def _get_from_cache(self, cache_key: str) -> Optional[LLMResponse]:
        entry = self.cache.get(cache_key)
        if entry is None:
            return None
        if utc_now() - entry.timestamp > self.cache_ttl:
            del self.cache[cache_key]
            return None
        return entry.response

    def _save_to_cache(self, cache_key: str, response: LLMResponse):
        if len(self.cache) >= self.cache_max_entries:
            oldest = min(self.cache, key=lambda k: self.cache[k].timestamp)
            del self.cache[oldest]
        self.cache[cache_key] = CacheEntry(response=response, timestamp=utc_now())

    async def complete(
        self,
        messages: Optional[List[Dict[str, str]]] = None,
        prompt: Optional[str] = None,
        system_prompt: Optional[str] = None,
        use_case: str = "chat",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Request a chat completion

        Args:
            messages: Chat messages in OpenAI format
            prompt: Single user prompt, used when messages is not given
            system_prompt: Optional system message prepended to the conversation
            use_case: Label for metrics and rate limiting
            temperature: Sampling temperature (settings default when None)
            max_tokens: Completion token cap (settings default when None)

        Returns:
            LLMResponse with the completion text

        Raises:
            LLMNotConfiguredError: If no API key or base URL is configured
            LLMRateLimitError: If the provider keeps returning 429 after retries
            LLMTimeoutError: If the request timed out
            LLMConnectionError: If the provider could not be reached
            LLMError: For any other provider failure
        """
        if not self.is_configured:
            raise LLMNotConfiguredError("LLM provider is not configured (set LLM_BASE_URL and LLM_API_KEY)")

        chat_messages: List[Dict[str, str]] = []
        if system_prompt:
            chat_messages.append({"role": "system", "content": system_prompt})
        if messages:
            chat_messages.extend(messages)
        elif prompt:
            chat_messages.append({"role": "user", "content": prompt})
        if not chat_messages:
            raise ValueError("Either messages or prompt must be provided")

        model = self.settings.llm_model
        temperature = self.settings.llm_temperature if temperature is None else temperature
        max_tokens = max_tokens or self.settings.llm_max_tokens

        cache_key = None
        if temperature == 0:
            cache_key = self._get_cache_key(model, chat_messages, max_tokens)
            cached = self._get_from_cache(cache_key)
            if cached:
                logger.debug("Using cached LLM response", extra={"use_case": use_case})
                llm_requests_total.labels(model=model, use_case=use_case, status="cached").inc()
                return cached

        payload = {
            "model": model,
            "messages": chat_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        max_retries = self.settings.llm_max_retries
        base_delay = self.settings.llm_retry_base_delay_seconds
        for attempt in range(max_retries + 1):
            await self.rate_limiter.acquire(self.GLOBAL_KEY, use_case)
            try:
                response = await self._send(payload, model, use_case)
            except LLMRateLimitError:
                if attempt >= max_retries:
                    raise
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    f"LLM rate limited, retrying in {delay:.1f}s (attempt {attempt + 1}/{max_retries})",
                    extra={"use_case": use_case},
                )
                await asyncio.sleep(delay)
                continue

            if cache_key and response.text:
                self._save_to_cache(cache_key, response)
            return response

        raise LLMRateLimitError(f"LLM rate limit persisted after {max_retries} retries")

    async def _send(self, payload: Dict[str, Any], model: str, use_case: str) -> LLMResponse:
        start_time = time.time()
        try:
            response = await self._get_client().post(
                "/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.llm_api_key}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise self._record_error(LLMTimeoutError(f"LLM request timed out: {e}"), model, use_case)
        except (httpx.ConnectError, httpx.NetworkError) as e:
            raise self._record_error(LLMConnectionError(f"Could not reach LLM provider: {e}"), model, use_case)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                raise self._record_error(LLMRateLimitError("LLM provider rate limit exceeded"), model, use_case)
            raise self._record_error(
                LLMError(f"LLM provider returned HTTP {status_code}: {e.response.text[:500]}"), model, use_case
            )
        except ValueError as e:
            raise self._record_error(LLMError(f"Invalid JSON from LLM provider: {e}"), model, use_case)
        finally:
            llm_request_duration_seconds.labels(model=model, use_case=use_case).observe(time.time() - start_time)

        try:
            text = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError):
            raise self._record_error(LLMError("Malformed completion response from LLM provider"), model, use_case)

        usage = {k: v for k, v in (data.get("usage") or {}).items() if isinstance(v, int)}
        if "prompt_tokens" in usage:
            llm_tokens_total.labels(model=model, type="prompt").inc(usage["prompt_tokens"])
        if "completion_tokens" in usage:
            llm_tokens_total.labels(model=model, type="completion").inc(usage["completion_tokens"])
        llm_requests_total.labels(model=model, use_case=use_case, status="success").inc()

        logger.debug(
            "LLM completion received",
            extra={"use_case": use_case, "model": data.get("model", model), "chars": len(text)},
        )
        return LLMResponse(text=text, model=data.get("model", model), usage=usage)

    def _record_error(self, error: LLMError, model: str, use_case: str) -> LLMError:
        llm_requests_total.labels(model=model, use_case=use_case, status="error").inc()
        llm_errors_total.labels(model=model, use_case=use_case, error_type=error.error_type).inc()
        logger.warning(f"LLM request failed: {error}", extra={"use_case": use_case, "error_type": error.error_type})
        return error

    async def close(self):
        """Close the HTTP client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Global client instance
_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get global LLM client instance"""
    global _llm_client
    if _llm_client is None:
        _llm_client = LLMClient()
    return _llm_client
