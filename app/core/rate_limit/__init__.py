"""Rate limiting: request fingerprints, limit tables and the HTTP middleware."""

from app.core.rate_limit.keys import KeyGenerator, KeyStrategy, TrafficClass
from app.core.rate_limit.middleware import RateLimiter, create_rate_limiter
from app.core.rate_limit.policy import Environment, LimitPolicy, LimitWindow, TierLimits

__all__ = [
    "Environment",
    "KeyGenerator",
    "KeyStrategy",
    "LimitPolicy",
    "LimitWindow",
    "RateLimiter",
    "TierLimits",
    "TrafficClass",
    "create_rate_limiter",
]
