from __future__ import annotations

import json
from typing import Optional, Protocol, runtime_checkable

import structlog

from ..adapters.openai import ChatCompletionRequest, GPTClient
from ..config import JudgeSettings
from ..errors import EmptyContentError, UpstreamJudgeError
from ..models import ModerationVerdict
from .policy import FAIL_OPEN_VERDICT, MODERATION_PROMPT, extract_json, resolve_verdict, user_message

logger = structlog.get_logger(__name__)


@runtime_checkable
class VerdictSource(Protocol):
    async def judge(self, content: str) -> ModerationVerdict:
        ...


class ModerationGateway:
    """Relay content to the judgment provider and normalise its answer.

    Only blank content is an error. Missing credentials, provider failures and
    unreadable answers all resolve to the default-approve verdict.
    """

    def __init__(
        self,
        client: Optional[GPTClient],
        *,
        model: str = "google/gemini-2.5-flash-lite",
        temperature: float = 0.1,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature

    @classmethod
    def from_settings(cls, settings: JudgeSettings) -> "ModerationGateway":
        client = None
        if settings.api_key:
            client = GPTClient(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout=settings.timeout_seconds,
            )
        return cls(client, model=settings.model, temperature=settings.temperature)

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def judge(self, content: str) -> ModerationVerdict:
        if not isinstance(content, str) or not content.strip():
            raise EmptyContentError()

        if self._client is None:
            logger.error("moderation_judge_unconfigured")
            return FAIL_OPEN_VERDICT

        logger.info("moderation_check", content_length=len(content))
        request = ChatCompletionRequest(
            model=self._model,
            messages=[
                {"role": "system", "content": MODERATION_PROMPT},
                {"role": "user", "content": user_message(content)},
            ],
            temperature=self._temperature,
            response_format={"type": "json_object"},
        )
        try:
            completion = await self._client.complete(request)
            raw = extract_json(completion.content)
        except UpstreamJudgeError as exc:
            logger.error("moderation_fail_open", reason="upstream_error", status=exc.status_code, error=str(exc))
            return FAIL_OPEN_VERDICT
        except json.JSONDecodeError as exc:
            logger.error("moderation_fail_open", reason="unparseable", error=str(exc))
            return FAIL_OPEN_VERDICT
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("moderation_fail_open", reason="unexpected", error=repr(exc))
            return FAIL_OPEN_VERDICT

        verdict = resolve_verdict(raw)
        logger.info(
            "moderation_verdict",
            should_approve=verdict.should_approve,
            flag_reason=verdict.flag_reason,
        )
        return verdict

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
