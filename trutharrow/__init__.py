"""
TruthArrow publishing core.

Composes posts through a lenient, fail-open LLM moderation gateway, records them
as live or pending, and mirrors reactions and poll votes optimistically for
anonymous or signed-in visitors.
"""

from .services.http_gateway import create_app
from .services.platform import PublishingCoordinator

__all__ = ["PublishingCoordinator", "create_app"]
