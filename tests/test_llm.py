from __future__ import annotations

import json
import unittest

import httpx

from gateway.errors import UpstreamExhaustedError, UpstreamHttpError, UpstreamTimeoutError
from gateway.llm import CompletionClient, parse_reply
from gateway.profile import CompletionConfig
from gateway.turns import ConversationTurn, RequestPayload


def _config(**overrides: object) -> CompletionConfig:
    values: dict[str, object] = {
        "api_base_url": "https://llm.test/api/v1",
        "primary_model": "primary/model",
        "fallback_model": "fallback/model",
        "request_timeout_seconds": 2.0,
        "max_retries": 2,
        "retry_backoff_seconds": 0.0,
        "dispatch_deadline_seconds": 30.0,
        "site_url": "https://site.test",
        "site_name": "Amethyst",
    }
    values.update(overrides)
    return CompletionConfig(**values)  # type: ignore[arg-type]


def _payload() -> RequestPayload:
    return RequestPayload(
        model="primary/model",
        messages=(ConversationTurn.text("system", "persona"), ConversationTurn.text("user", "hi")),
    )


def _ok(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


class ParseReplyTests(unittest.TestCase):
    def test_missing_choices_is_a_failure(self) -> None:
        with self.assertRaises(UpstreamHttpError):
            parse_reply({"error": {"message": "rate limited"}}, "m")

    def test_first_choice_wins(self) -> None:
        reply = parse_reply(
            {"choices": [{"message": {"content": " first "}}, {"message": {"content": "second"}}]},
            "m",
        )
        self.assertEqual(reply.content, "first")
        self.assertEqual(reply.usage["total_tokens"], 0)


class CompletionClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_success_sends_auth_and_metadata_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok("4")

        client = CompletionClient(_config(), "secret", transport=httpx.MockTransport(handler))
        reply = await client.complete(_payload())

        self.assertEqual(reply.content, "4")
        self.assertEqual(len(seen), 1)
        request = seen[0]
        self.assertEqual(str(request.url), "https://llm.test/api/v1/chat/completions")
        self.assertEqual(request.headers["Authorization"], "Bearer secret")
        self.assertEqual(request.headers["HTTP-Referer"], "https://site.test")
        self.assertEqual(request.headers["X-Title"], "Amethyst")
        body = json.loads(request.content)
        self.assertEqual(body["model"], "primary/model")
        self.assertEqual(body["messages"][1], {"role": "user", "content": "hi"})

    async def test_primary_timeouts_fall_back(self) -> None:
        models: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            model = json.loads(request.content)["model"]
            models.append(model)
            if model == "primary/model":
                raise httpx.ReadTimeout("timed out", request=request)
            return _ok("from fallback")

        client = CompletionClient(_config(max_retries=2), "k", transport=httpx.MockTransport(handler))
        reply = await client.complete(_payload())

        self.assertEqual(reply.content, "from fallback")
        self.assertLessEqual(models.count("primary/model"), 3)
        self.assertEqual(models, ["primary/model"] * 3 + ["fallback/model"])

    async def test_retry_recovers_on_same_model(self) -> None:
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(502, text="bad gateway")
            return _ok("second try")

        client = CompletionClient(_config(), "k", transport=httpx.MockTransport(handler))
        reply = await client.complete(_payload())
        self.assertEqual(reply.content, "second try")
        self.assertEqual(calls["n"], 2)

    async def test_malformed_body_is_retried_not_raised(self) -> None:
        bodies = [httpx.Response(200, json={"unexpected": True}), _ok("fine")]

        def handler(request: httpx.Request) -> httpx.Response:
            return bodies.pop(0)

        client = CompletionClient(_config(), "k", transport=httpx.MockTransport(handler))
        reply = await client.complete(_payload())
        self.assertEqual(reply.content, "fine")

    async def test_exhaustion_raises_with_last_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "boom"})

        client = CompletionClient(_config(max_retries=1), "k", transport=httpx.MockTransport(handler))
        with self.assertRaises(UpstreamExhaustedError) as ctx:
            await client.complete(_payload())
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsInstance(ctx.exception.last_error, UpstreamHttpError)
        self.assertEqual(ctx.exception.last_error.model, "fallback/model")

    async def test_no_fallback_configured(self) -> None:
        client = CompletionClient(_config(fallback_model=None, max_retries=0), "k")
        self.assertEqual(client.attempt_plan(), ["primary/model"])

    async def test_attempt_maps_timeouts(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        client = CompletionClient(_config(), "k", transport=httpx.MockTransport(handler))
        with self.assertRaises(UpstreamTimeoutError):
            await client.attempt(_payload(), "primary/model")


if __name__ == "__main__":
    unittest.main()
