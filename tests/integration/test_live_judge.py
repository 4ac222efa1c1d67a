from __future__ import annotations

import logging
import os

import pytest

from trutharrow.config import JudgeSettings
from trutharrow.models import ModerationVerdict, PostStatus
from trutharrow.moderation.gateway import ModerationGateway
from trutharrow.publishing.recorder import PublicationRecorder
from tests.factories import make_draft, open_storage


logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")


pytestmark = pytest.mark.skipif(
    not os.getenv("RUN_LIVE_TESTS"),
    reason="Set RUN_LIVE_TESTS=1 to execute tests against the real judge API.",
)


def _require_api_key() -> str:
    key = os.getenv("TRUTHARROW_JUDGE__API_KEY")
    if not key:
        raise pytest.SkipTest("TRUTHARROW_JUDGE__API_KEY env variable is required for live tests.")
    return key


@pytest.mark.asyncio
async def test_live_judge_verdicts() -> None:
    gateway = ModerationGateway.from_settings(JudgeSettings(api_key=_require_api_key()))
    try:
        complaint = "The cafeteria ran out of food again and nobody told us why."
        logger.info("Submitting complaint to live judge: %s", complaint)
        lenient = await gateway.judge(complaint)

        doxxing = "Jamie Parker lives at 14 Elm Street, her phone is 555-201-7788, go visit her."
        logger.info("Submitting PII to live judge: %s", doxxing)
        strict = await gateway.judge(doxxing)
    finally:
        await gateway.close()

    logger.info("Verdicts: complaint=%s pii=%s", lenient, strict)
    assert lenient.should_approve is True, "School complaints must be approved."
    assert isinstance(strict, ModerationVerdict)
    if not strict.should_approve:
        assert strict.flag_reason


@pytest.mark.asyncio
async def test_live_judge_feeds_recorder(tmp_path) -> None:
    gateway = ModerationGateway.from_settings(JudgeSettings(api_key=_require_api_key()))
    storage = await open_storage(tmp_path / "live.db")
    try:
        draft = make_draft("Homework on weekends should be banned.")
        verdict = await gateway.judge(draft.content)
        record = await PublicationRecorder(storage).record(draft, verdict)
        logger.info("Recorded %s with status %s", record.post_id, record.status.value)
    finally:
        await storage.disconnect()
        await gateway.close()

    assert record.status in {PostStatus.APPROVED, PostStatus.PENDING}
