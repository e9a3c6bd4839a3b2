from __future__ import annotations

import asyncio
from dataclasses import dataclass
import os
import time
from typing import Any, Callable, Mapping, TypeVar

from langchain_openai import ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage
from loguru import logger

from novella.config.schema import AppConfigRoot, ChatRoute
from novella.domain.hashing import sha256_text
from novella.llm.cache import ResponseCache


@dataclass
class LLMResponse:
    text: str
    cached: bool


@dataclass(frozen=True)
class ResolvedChatRuntime:
    route: str
    endpoint_name: str
    provider_name: str
    model: str
    temperature: float
    timeout_s: int
    max_concurrency: int
    retries: int
    max_tokens: int | None
    base_url: str | None
    api_key_env: str | None
    api_key: str | None


T = TypeVar("T")


def _short_key(value: str | None, length: int = 12) -> str:
    if not value:
        return "-"
    return value[:length]


def _extract_json_error_location(exc: Exception) -> str | None:
    lineno = getattr(exc, "lineno", None)
    colno = getattr(exc, "colno", None)
    pos = getattr(exc, "pos", None)

    parts: list[str] = []
    if isinstance(lineno, int):
        parts.append(f"line={lineno}")
    if isinstance(colno, int):
        parts.append(f"column={colno}")
    if isinstance(pos, int):
        parts.append(f"pos={pos}")

    if not parts:
        return None
    return ", ".join(parts)


def _backoff_seconds(attempt: int) -> float:
    return min(0.5 * (2**attempt), 4.0)


def resolve_chat_runtime(config: AppConfigRoot, route: ChatRoute) -> ResolvedChatRuntime:
    endpoint_name, endpoint, provider = config.llm.resolve_chat_route(route)
    api_key = None
    if provider.api_key_env:
        api_key = os.getenv(provider.api_key_env)
        if not api_key:
            raise ValueError(
                f"Missing required API key env for route '{route}': {provider.api_key_env}"
            )

    return ResolvedChatRuntime(
        route=route,
        endpoint_name=endpoint_name,
        provider_name=endpoint.provider,
        model=endpoint.model,
        temperature=endpoint.temperature,
        timeout_s=endpoint.timeout_s,
        max_concurrency=endpoint.max_concurrency,
        retries=endpoint.retries,
        max_tokens=endpoint.max_tokens,
        base_url=provider.base_url,
        api_key_env=provider.api_key_env,
        api_key=api_key,
    )


def _build_chat_model(runtime: ResolvedChatRuntime) -> ChatOpenAI:
    kwargs: dict[str, Any] = {
        "model": runtime.model,
        "temperature": runtime.temperature,
        "timeout": runtime.timeout_s,
        # Retries happen in ChatClient so the attempt count stays predictable.
        "max_retries": 0,
    }

    if runtime.max_tokens:
        kwargs["max_tokens"] = runtime.max_tokens
    if runtime.base_url:
        kwargs["base_url"] = runtime.base_url
    if runtime.api_key:
        kwargs["api_key"] = runtime.api_key

    return ChatOpenAI(**kwargs)


def make_cache_key(*parts: str) -> str:
    joined = "::".join(parts)
    return sha256_text(joined)


class ChatClient:
    """Chat completions for one route with retry, optional caching and JSON parsing.

    Passing ``cache_key=None`` bypasses the cache; the writer and assistant
    features do that so each request gets a fresh draft.
    """

    def __init__(self, config: AppConfigRoot, cache: ResponseCache, route: ChatRoute = "writer"):
        self.config = config
        self.cache = cache
        self.runtime = resolve_chat_runtime(config, route)
        self.model = _build_chat_model(self.runtime)
        self.model_identifier = f"{self.runtime.provider_name}/{self.runtime.endpoint_name}/{self.runtime.model}"
        self._async_semaphore = asyncio.Semaphore(max(1, self.runtime.max_concurrency))

    def _build_log_context(
        self,
        *,
        cache_key: str | None = None,
        attempt: int | None = None,
        attempts_total: int | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        merged: dict[str, Any] = {
            "route": self.runtime.route,
            "provider": self.runtime.provider_name,
            "endpoint": self.runtime.endpoint_name,
            "model": self.runtime.model,
        }
        if context:
            for key, value in context.items():
                if value is not None:
                    merged[key] = value
        if cache_key:
            merged["cache_key"] = _short_key(cache_key)
        if attempt is not None and attempts_total is not None:
            merged["attempt"] = f"{attempt}/{attempts_total}"
        return merged

    def _format_payload_for_log(self, payload: str) -> str:
        max_chars = int(self.config.observability.json_error_payload_max_chars)
        if max_chars <= 0 or len(payload) <= max_chars:
            return payload

        head = max_chars // 2
        tail = max_chars - head
        omitted = max(0, len(payload) - max_chars)
        if head <= 0 or tail <= 0:
            return payload[:max_chars]

        return f"{payload[:head]}\n...[truncated {omitted} chars]...\n{payload[-tail:]}"

    def _log_json_parse_failure(
        self,
        *,
        source: str,
        raw_text: str,
        exc: Exception,
        cache_key: str | None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        log = logger.bind(**self._build_log_context(cache_key=cache_key, context=context))
        location = _extract_json_error_location(exc)

        log.warning(
            "JSON parse failed source={} error_type={} error={} location={} raw_len={} raw_hash={}",
            source,
            type(exc).__name__,
            exc,
            location or "-",
            len(raw_text),
            sha256_text(raw_text),
        )

        if self.config.observability.log_json_error_payload:
            log.warning("JSON parse raw_response={}", self._format_payload_for_log(raw_text))

    def _log_attempt_failure(
        self,
        exc: Exception,
        *,
        started: float,
        attempt: int,
        attempts: int,
        cache_key: str | None,
        context: Mapping[str, Any] | None,
    ) -> None:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        log = logger.bind(
            **self._build_log_context(
                cache_key=cache_key,
                attempt=attempt + 1,
                attempts_total=attempts,
                context=context,
            )
        )
        if self.config.observability.log_retry_attempts:
            log.warning(
                "LLM call failed elapsed_ms={} error_type={} error={}",
                elapsed_ms,
                type(exc).__name__,
                exc,
            )
        if attempt == attempts - 1:
            log.exception("LLM call failed on final attempt")

    def _cached(self, cache_key: str | None) -> str | None:
        if cache_key is None:
            return None
        cached = self.cache.get(cache_key)
        if cached.hit and cached.value is not None:
            return cached.value
        return None

    def _store(self, cache_key: str | None, text: str) -> None:
        if cache_key is not None:
            self.cache.set(cache_key, text)

    def _drop_invalid_cache(
        self, cache_key: str, raw_text: str, exc: Exception, context: Mapping[str, Any] | None
    ) -> None:
        self._log_json_parse_failure(source="cache", raw_text=raw_text, exc=exc, cache_key=cache_key, context=context)
        logger.bind(**self._build_log_context(cache_key=cache_key, context=context)).warning(
            "Deleting invalid cached LLM response"
        )
        self.cache.delete(cache_key)

    def _parse_response(
        self,
        response: Any,
        parser: Callable[[str], T] | None,
        *,
        attempt: int,
        attempts: int,
        cache_key: str | None,
        context: Mapping[str, Any] | None,
    ) -> tuple[str, T | None]:
        text = str(response.content).strip()
        if not text:
            raise ValueError("Empty LLM response")
        if parser is None:
            return text, None
        try:
            return text, parser(text)
        except Exception as parse_exc:  # noqa: BLE001
            self._log_json_parse_failure(
                source="llm_response",
                raw_text=text,
                exc=parse_exc,
                cache_key=cache_key,
                context=self._build_log_context(attempt=attempt + 1, attempts_total=attempts, context=context),
            )
            raise

    def _invoke_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        parser: Callable[[str], T] | None = None,
        *,
        cache_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[str, T | None]:
        attempts = max(1, self.runtime.retries + 1)
        last_exc: Exception | None = None
        messages = [SystemMessage(system_prompt), HumanMessage(user_prompt)]

        for attempt in range(attempts):
            started = time.perf_counter()
            try:
                response = self.model.invoke(messages)
                return self._parse_response(
                    response, parser, attempt=attempt, attempts=attempts, cache_key=cache_key, context=context
                )
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                self._log_attempt_failure(
                    exc, started=started, attempt=attempt, attempts=attempts, cache_key=cache_key, context=context
                )
                if attempt < attempts - 1:
                    time.sleep(_backoff_seconds(attempt))

        raise RuntimeError("LLM call failed after retries") from last_exc

    async def _ainvoke_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        parser: Callable[[str], T] | None = None,
        *,
        cache_key: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[str, T | None]:
        attempts = max(1, self.runtime.retries + 1)
        last_exc: Exception | None = None
        messages = [SystemMessage(system_prompt), HumanMessage(user_prompt)]

        for attempt in range(attempts):
            started = time.perf_counter()
            try:
                async with self._async_semaphore:
                    response = await asyncio.to_thread(self.model.invoke, messages)
                return self._parse_response(
                    response, parser, attempt=attempt, attempts=attempts, cache_key=cache_key, context=context
                )
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                self._log_attempt_failure(
                    exc, started=started, attempt=attempt, attempts=attempts, cache_key=cache_key, context=context
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(_backoff_seconds(attempt))

        raise RuntimeError("LLM call failed after retries") from last_exc

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        cache_key: str | None = None,
        *,
        context: Mapping[str, Any] | None = None,
    ) -> LLMResponse:
        cached = self._cached(cache_key)
        if cached is not None:
            return LLMResponse(text=cached, cached=True)

        text, _ = self._invoke_with_retry(system_prompt, user_prompt, cache_key=cache_key, context=context)
        self._store(cache_key, text)
        return LLMResponse(text=text, cached=False)

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        cache_key: str | None,
        parser: Callable[[str], T],
        *,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[LLMResponse, T]:
        cached = self._cached(cache_key)
        if cached is not None and cache_key is not None:
            try:
                return LLMResponse(text=cached, cached=True), parser(cached)
            except Exception as exc:  # noqa: BLE001
                self._drop_invalid_cache(cache_key, cached, exc, context)

        text, parsed = self._invoke_with_retry(system_prompt, user_prompt, parser, cache_key=cache_key, context=context)
        self._store(cache_key, text)
        return LLMResponse(text=text, cached=False), parsed  # type: ignore[return-value]

    async def complete_json_async(
        self,
        system_prompt: str,
        user_prompt: str,
        cache_key: str | None,
        parser: Callable[[str], T],
        *,
        context: Mapping[str, Any] | None = None,
    ) -> tuple[LLMResponse, T]:
        cached = self._cached(cache_key)
        if cached is not None and cache_key is not None:
            try:
                return LLMResponse(text=cached, cached=True), parser(cached)
            except Exception as exc:  # noqa: BLE001
                self._drop_invalid_cache(cache_key, cached, exc, context)

        text, parsed = await self._ainvoke_with_retry(
            system_prompt, user_prompt, parser, cache_key=cache_key, context=context
        )
        self._store(cache_key, text)
        return LLMResponse(text=text, cached=False), parsed  # type: ignore[return-value]
