from .http_gateway import create_app
from .platform import PublishingCoordinator

__all__ = ["PublishingCoordinator", "create_app"]
