from .gateway import ModerationGateway, VerdictSource
from .policy import FAIL_OPEN_VERDICT, MODERATION_PROMPT, resolve_verdict

__all__ = ["FAIL_OPEN_VERDICT", "MODERATION_PROMPT", "ModerationGateway", "VerdictSource", "resolve_verdict"]
