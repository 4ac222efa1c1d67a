"""Moderation policy prompt and verdict normalisation.

Every path that turns a raw judgment (model output, gateway response) into a
``ModerationVerdict`` goes through :func:`resolve_verdict`, so the fail-open rule
lives in exactly one place.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from ..models import ModerationVerdict

logger = structlog.get_logger(__name__)

FAIL_OPEN_VERDICT = ModerationVerdict(should_approve=True, flag_reason=None)

EMPTY_CONTENT_REASON = "Empty content"

MODERATION_PROMPT = """You are a lenient content moderator for a student accountability platform.

YOUR ROLE: APPROVE most content. Only FLAG extreme violations.

APPROVE (allow these):
- Strong language, cursing
- Criticism of specific people
- Rumors and allegations
- Heated discussions
- Sarcasm, satire

FLAG ONLY IF (block these):
- Spam/promotions
- Extreme hate speech or slurs
- PII: full names + context revealing minors, addresses, phone numbers
- Direct violent threats
- Illegal activity (drug sales, weapons)
- Pure harassment with zero substance

DEFAULT: When unsure, APPROVE.

Respond ONLY with valid JSON:
{
  "shouldApprove": true,
  "flagReason": null
}

OR

{
  "shouldApprove": false,
  "flagReason": "Brief reason why"
}"""


def user_message(content: str) -> str:
    return f"Content to moderate:\n\n{content}"


def resolve_verdict(raw: Any) -> ModerationVerdict:
    if not isinstance(raw, dict):
        logger.warning("verdict_unrecognised_shape", raw_type=type(raw).__name__)
        return FAIL_OPEN_VERDICT
    decision = raw.get("shouldApprove")
    if not isinstance(decision, bool):
        logger.warning("verdict_missing_decision", keys=sorted(str(key) for key in raw))
        return FAIL_OPEN_VERDICT
    reason = raw.get("flagReason")
    if isinstance(reason, str) and reason.strip():
        return ModerationVerdict(should_approve=decision, flag_reason=reason.strip())
    if decision:
        return FAIL_OPEN_VERDICT
    return ModerationVerdict(should_approve=False, flag_reason=None)


def extract_json(content: str) -> Any:
    if not content:
        raise json.JSONDecodeError("Empty response from judge", "", 0)
    stripped = content.strip()
    if not stripped:
        raise json.JSONDecodeError("Empty response after stripping", stripped, 0)
    try:
        return json.loads(stripped.strip("` \n"))
    except json.JSONDecodeError:
        pass
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end != -1 and end > start:
        return json.loads(stripped[start : end + 1])
    raise json.JSONDecodeError("No JSON object found in response", stripped, 0)
