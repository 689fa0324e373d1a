"""Background rescans driven by filesystem events."""

from .service import RescanResult, WatchService

__all__ = ["WatchService", "RescanResult"]
