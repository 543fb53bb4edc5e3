from .candidate import Candidate, DiscoveryOptions, DiscoveryResult
from .config import DiscoveryConfig, WebScrapingConfig

__all__ = [
    "Candidate",
    "DiscoveryOptions",
    "DiscoveryResult",
    "DiscoveryConfig",
    "WebScrapingConfig",
]
