"""Per-environment rate limit tables.

Two profiles are built in:

- ``standard``: one flat ceiling per tier.
- ``widget``: the ceiling depends on the traffic class. Trusted widget
  traffic gets more room than generic callers, bots get much less.
  Development stays fully permissive whatever the class.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping

from app.core.errors import ValidationAppError
from app.core.rate_limit.keys import TrafficClass

MINUTE_MS = 60 * 1000


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass(frozen=True)
class LimitWindow:
    window_ms: int
    limit: int


@dataclass(frozen=True)
class TierLimits:
    """Window length and ceilings for one environment tier.

    Attributes:
        window_ms: Fixed window length in milliseconds.
        limit: Ceiling for any class missing from ``class_limits``.
        class_limits: Per traffic class ceilings.
    """

    window_ms: int
    limit: int
    class_limits: Mapping[TrafficClass, int] = field(default_factory=dict)

    def limit_for(self, traffic_class: TrafficClass) -> int:
        return self.class_limits.get(traffic_class, self.limit)


STANDARD_TIERS: dict[Environment, TierLimits] = {
    Environment.DEVELOPMENT: TierLimits(window_ms=1 * MINUTE_MS, limit=500),
    Environment.STAGING: TierLimits(window_ms=5 * MINUTE_MS, limit=100),
    Environment.PRODUCTION: TierLimits(window_ms=15 * MINUTE_MS, limit=50),
}

# Generic traffic falls back to the tier default, so APP_RATE_LIMIT_MAX applies to it
_WIDGET_CLASS_LIMITS = {
    TrafficClass.TRUSTED: 100,
    TrafficClass.BOT: 5,
}

WIDGET_TIERS: dict[Environment, TierLimits] = {
    Environment.DEVELOPMENT: TierLimits(window_ms=2 * MINUTE_MS, limit=500),
    Environment.STAGING: TierLimits(window_ms=15 * MINUTE_MS, limit=20, class_limits=_WIDGET_CLASS_LIMITS),
    Environment.PRODUCTION: TierLimits(window_ms=15 * MINUTE_MS, limit=20, class_limits=_WIDGET_CLASS_LIMITS),
}

PROFILES: dict[str, dict[Environment, TierLimits]] = {
    "standard": STANDARD_TIERS,
    "widget": WIDGET_TIERS,
}


def parse_environment(value: str | Environment) -> Environment:
    """Normalize an environment tier name.

    Raises:
        ValidationAppError: If the tier is not development, staging or production.
    """
    try:
        return Environment(str(getattr(value, "value", value)).strip().lower())
    except ValueError as exc:
        raise ValidationAppError(
            code="unknown_environment",
            message=f"Unknown environment tier: '{value}'",
            details={"hint": "Use development, staging or production"},
        ) from exc


class LimitPolicy:
    """Resolve ``(window_ms, limit)`` for an environment and traffic class."""

    def __init__(self, tiers: Mapping[Environment, TierLimits], *, classification_aware: bool = True) -> None:
        """Initialize the policy.

        Args:
            tiers: Limits for every environment tier.
            classification_aware: When False, per-class ceilings are ignored and
                every request gets the tier default.

        Raises:
            ValidationAppError: If a tier is missing.
        """
        missing = set(Environment) - set(tiers)
        if missing:
            raise ValidationAppError(
                code="incomplete_limit_table",
                message="Limit table must define every environment tier",
                details={"context": {"missing": sorted(env.value for env in missing)}},
            )
        self._tiers = dict(tiers)
        self.classification_aware = classification_aware

    @classmethod
    def from_profile(
        cls,
        profile: str,
        *,
        environment: str | Environment | None = None,
        window_ms: int | None = None,
        limit: int | None = None,
    ) -> "LimitPolicy":
        """Build a policy from a named profile, optionally overriding one tier.

        Args:
            profile: ``standard`` or ``widget``.
            environment: Tier whose window/default limit get overridden.
            window_ms: Replacement window length for that tier.
            limit: Replacement default ceiling for that tier.

        Raises:
            ValidationAppError: If the profile or environment is unknown.
        """
        tiers = PROFILES.get(profile.strip().lower())
        if tiers is None:
            raise ValidationAppError(
                code="unknown_rate_limit_profile",
                message=f"Unknown rate limit profile: '{profile}'. Supported profiles: standard, widget",
            )
        tiers = dict(tiers)

        if environment is not None and (window_ms is not None or limit is not None):
            env = parse_environment(environment)
            tier = tiers[env]
            tiers[env] = replace(
                tier,
                window_ms=window_ms if window_ms is not None else tier.window_ms,
                limit=limit if limit is not None else tier.limit,
            )
        return cls(tiers, classification_aware=any(t.class_limits for t in tiers.values()))

    def tier(self, environment: str | Environment) -> TierLimits:
        return self._tiers[parse_environment(environment)]

    def resolve(self, environment: str | Environment, traffic_class: TrafficClass) -> LimitWindow:
        tier = self.tier(environment)
        limit = tier.limit_for(traffic_class) if self.classification_aware else tier.limit
        return LimitWindow(window_ms=tier.window_ms, limit=limit)
