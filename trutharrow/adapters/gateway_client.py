from __future__ import annotations

from typing import Optional

import httpx
import structlog

from ..models import ModerationVerdict
from ..moderation.policy import FAIL_OPEN_VERDICT, resolve_verdict

logger = structlog.get_logger(__name__)


class ModerationHttpClient:
    """Calls the deployed moderation function the way the front end does.

    The request timeout is whatever the transport defaults to; failures of any
    kind approve the content.
    """

    def __init__(
        self,
        url: str,
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"content-type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["authorization"] = f"Bearer {api_key}"
        self._url = url
        self._headers = headers
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def judge(self, content: str) -> ModerationVerdict:
        try:
            response = await self._client.post(self._url, json={"content": content}, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.error("moderation_call_failed", error=str(exc))
            return FAIL_OPEN_VERDICT
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("moderation_call_failed", error=repr(exc))
            return FAIL_OPEN_VERDICT
        if response.is_error:
            logger.error("moderation_call_status", status=response.status_code)
            return FAIL_OPEN_VERDICT
        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("moderation_call_unparseable", error=str(exc))
            return FAIL_OPEN_VERDICT
        return resolve_verdict(payload)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
