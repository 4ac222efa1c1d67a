from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import UpstreamJudgeError

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://ai.gateway.lovable.dev/v1"


class OpenAIAdapter:
    """Thin OpenAI-compatible HTTP client used to reach the judgment provider."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        max_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )
        self._owns_client = client is None
        self._max_attempts = max_attempts

    async def post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        retry = AsyncRetrying(
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5.0),
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ReadError)),
        )
        try:
            async for attempt in retry:
                with attempt:
                    logger.debug(
                        "judge_request",
                        path=path,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    response = await self._client.post(path, json=payload)
                    if response.status_code >= 400:
                        raise UpstreamJudgeError(
                            f"API error: {response.status_code} {response.text[:200]}",
                            status_code=response.status_code,
                        )
                    try:
                        data = response.json()
                    except ValueError as exc:
                        raise UpstreamJudgeError("Judge returned a non-JSON body") from exc
                    logger.debug(
                        "judge_response",
                        path=path,
                        status=response.status_code,
                    )
                    return data
        except RetryError as exc:
            raise UpstreamJudgeError("Retry exhausted") from exc
        except httpx.HTTPError as exc:
            raise UpstreamJudgeError(f"Transport error: {exc}") from exc
        raise UpstreamJudgeError("Retry exhausted")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


@dataclass(slots=True)
class ChatCompletionRequest:
    model: str
    messages: list[dict[str, str]]
    temperature: Optional[float] = None
    max_completion_tokens: Optional[int] = None
    response_format: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class ChatCompletionResult:
    content: str
    finish_reason: Optional[str]
    tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0


class GPTClient(OpenAIAdapter):
    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResult:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.response_format is not None:
            payload["response_format"] = request.response_format
        if request.max_completion_tokens is not None:
            payload["max_completion_tokens"] = request.max_completion_tokens
        logger.debug("gpt_api_call", model=request.model, messages_count=len(request.messages))
        data = await self.post("/chat/completions", payload)
        try:
            choice = data["choices"][0]
            content = choice["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamJudgeError("Malformed completion envelope") from exc
        usage = data.get("usage") or {}
        return ChatCompletionResult(
            content=content or "",
            finish_reason=choice.get("finish_reason"),
            tokens=usage.get("total_tokens", 0),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )
