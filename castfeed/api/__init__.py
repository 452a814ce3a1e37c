"""
API Layer.

This package handles all communication with the generation service and the
managed backend.
"""

from .auth import BackendAuthenticator
from .backend import BackendClient
from .client import GenerationAPIClient
from .rate_limiter import AdaptiveRateLimiter

__all__ = [
    "AdaptiveRateLimiter",
    "BackendAuthenticator",
    "BackendClient",
    "GenerationAPIClient",
]
