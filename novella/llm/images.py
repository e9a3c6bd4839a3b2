from __future__ import annotations

from dataclasses import dataclass
import os
import time
from typing import Any

import httpx
from loguru import logger

from novella.config.schema import AppConfigRoot


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


@dataclass(frozen=True)
class ResolvedImageRuntime:
    endpoint_name: str
    provider_name: str
    model: str
    size: str
    timeout_s: int
    retries: int
    base_url: str | None
    api_key_env: str | None
    api_key: str | None


def resolve_image_runtime(config: AppConfigRoot) -> ResolvedImageRuntime:
    endpoint_name, endpoint, provider = config.llm.resolve_image_route()

    api_key = None
    if provider.api_key_env:
        api_key = os.getenv(provider.api_key_env)
        if not api_key:
            raise ValueError(f"Missing required API key env for image route: {provider.api_key_env}")

    return ResolvedImageRuntime(
        endpoint_name=endpoint_name,
        provider_name=endpoint.provider,
        model=endpoint.model,
        size=endpoint.size,
        timeout_s=endpoint.timeout_s,
        retries=endpoint.retries,
        base_url=provider.base_url,
        api_key_env=provider.api_key_env,
        api_key=api_key,
    )


def _extract_b64_image(payload: dict[str, Any]) -> str:
    data = payload.get("data")
    if not isinstance(data, list) or not data:
        raise ValueError("Invalid image response: missing 'data'")
    first = data[0]
    if not isinstance(first, dict) or not first.get("b64_json"):
        raise ValueError("Invalid image response: missing 'b64_json'")
    return str(first["b64_json"])


class ImageClient:
    """Text-to-image over an OpenAI-compatible ``/images/generations`` endpoint."""

    def __init__(self, runtime: ResolvedImageRuntime):
        base_url = (runtime.base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.generate_url = f"{base_url}/images/generations"
        self.runtime = runtime

    @classmethod
    def from_config(cls, config: AppConfigRoot) -> "ImageClient":
        return cls(resolve_image_runtime(config))

    def generate(self, prompt: str) -> str:
        """Return the first generated image as a base64 string."""
        headers = {"Content-Type": "application/json"}
        if self.runtime.api_key:
            headers["Authorization"] = f"Bearer {self.runtime.api_key}"
        body = {
            "model": self.runtime.model,
            "prompt": prompt,
            "size": self.runtime.size,
            "n": 1,
            "response_format": "b64_json",
        }

        last_exc: Exception | None = None
        attempts = max(1, self.runtime.retries + 1)
        for attempt in range(attempts):
            try:
                with httpx.Client(timeout=self.runtime.timeout_s) as client:
                    response = client.post(self.generate_url, headers=headers, json=body)
                    response.raise_for_status()
                    payload = response.json()
                return _extract_b64_image(payload)
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                logger.bind(endpoint=self.runtime.endpoint_name, model=self.runtime.model).warning(
                    "Image request failed attempt={}/{} error={}", attempt + 1, attempts, exc
                )
                if attempt < attempts - 1:
                    time.sleep(min(0.3 * (2**attempt), 2.0))

        raise RuntimeError("Image generation failed after retries") from last_exc
