"""OpenAI-compatible chat completions client with retry and model fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from gateway.errors import (
    UpstreamError,
    UpstreamExhaustedError,
    UpstreamHttpError,
    UpstreamTimeoutError,
)
from gateway.profile import CompletionConfig
from gateway.turns import RequestPayload

logger = logging.getLogger(__name__)

MAX_CONTENT_LEN = 4096


@dataclass(frozen=True)
class CompletionReply:
    content: str
    model: str
    usage: dict[str, int]


def _parse_usage(data: dict[str, Any]) -> dict[str, int]:
    usage = data.get("usage") or {}
    return {
        "prompt_tokens": int(usage.get("prompt_tokens") or 0),
        "completion_tokens": int(usage.get("completion_tokens") or 0),
        "total_tokens": int(usage.get("total_tokens") or 0),
    }


def parse_reply(data: Any, model: str) -> CompletionReply:
    """Pull the first choice's message content out of a response body."""
    if not isinstance(data, dict):
        raise UpstreamHttpError("response body is not an object", model=model)
    content: str | None = None
    for choice in data.get("choices") or []:
        msg = (choice or {}).get("message") or {}
        if isinstance(msg.get("content"), str):
            content = msg["content"]
            break
    if content is None or not content.strip():
        raise UpstreamHttpError("response has no usable choices", model=model)
    if len(content) > MAX_CONTENT_LEN:
        content = content[: MAX_CONTENT_LEN - 3] + "..."
    return CompletionReply(content=content.strip(), model=str(data.get("model") or model), usage=_parse_usage(data))


class CompletionClient:
    """Runs the attempt plan: primary model up to `max_retries + 1` times, then the fallback once."""

    def __init__(
        self,
        config: CompletionConfig,
        api_key: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._api_key = api_key
        self._transport = transport

    def attempt_plan(self) -> list[str]:
        plan = [self._config.primary_model] * (self._config.max_retries + 1)
        fallback = self._config.fallback_model
        if fallback and fallback != self._config.primary_model:
            plan.append(fallback)
        return plan

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        if self._config.site_url:
            headers["HTTP-Referer"] = self._config.site_url
        if self._config.site_name:
            headers["X-Title"] = self._config.site_name
        return headers

    async def _post(self, body: dict[str, Any], model: str) -> CompletionReply:
        url = f"{self._config.api_base_url}/chat/completions"
        timeout = self._config.request_timeout_seconds
        # One client per attempt so a cancelled attempt never leaves a connection to reuse.
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            resp = await client.post(url, headers=self._headers(), json=body)
            if resp.status_code < 200 or resp.status_code >= 300:
                raise UpstreamHttpError(
                    f"HTTP {resp.status_code}: {resp.text[:200]}",
                    model=model,
                    status_code=resp.status_code,
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise UpstreamHttpError("response body is not JSON", model=model, status_code=resp.status_code) from exc
        return parse_reply(data, model)

    async def attempt(self, payload: RequestPayload, model: str) -> CompletionReply:
        """One attempt under a hard wall-clock timeout."""
        body = payload.with_model(model).to_wire()
        try:
            return await asyncio.wait_for(self._post(body, model), timeout=self._config.request_timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise UpstreamTimeoutError(
                f"no response within {self._config.request_timeout_seconds:g}s", model=model
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamHttpError(f"transport error: {exc}", model=model) from exc

    async def complete(self, payload: RequestPayload) -> CompletionReply:
        plan = self.attempt_plan()
        last_error: UpstreamError | None = None
        for index, model in enumerate(plan):
            if index > 0 and model == plan[index - 1] and self._config.retry_backoff_seconds > 0:
                await asyncio.sleep(self._config.retry_backoff_seconds)
            try:
                reply = await self.attempt(payload, model)
            except UpstreamError as exc:
                last_error = exc
                remaining = len(plan) - index - 1
                logger.warning(
                    "Completion attempt %d/%d on '%s' failed (%s); %d left",
                    index + 1,
                    len(plan),
                    model,
                    exc,
                    remaining,
                )
                continue
            if model != self._config.primary_model:
                logger.info("Completion served by fallback model '%s'", model)
            return reply
        raise UpstreamExhaustedError(len(plan), last_error)
