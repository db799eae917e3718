"""Dataclass-based domain configuration pattern.

Each vertical defines its thresholds, limits, and feature flags as a
frozen dataclass. This gives you:
- Type safety (IDE autocompletion, mypy checking)
- Default values (sensible out-of-the-box)
- Immutability (frozen=True prevents accidental mutation)
- Easy overrides (from env vars)

Example domain: an agency tracking client projects, tasks, and follow-ups.
"""

import os
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Nested config sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskConfig:
    """Task risk classification thresholds."""

    stale_after_days: int = 3
    remind_cooldown_hours: int = 24


@dataclass(frozen=True)
class ServiceConfig:
    """Service quantity limits and template defaults."""

    min_quantity: int = 1
    max_quantity: int = 999
    default_task_priority: str = "MEDIUM"


@dataclass(frozen=True)
class FollowUpConfig:
    """WhatsApp follow-up settings."""

    country_prefix: str = "+60"
    wa_base_url: str = "https://wa.me"


# ---------------------------------------------------------------------------
# Top-level domain config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackerConfig:
    """Complete configuration for the agency tracker vertical.

    Usage::

        config = TrackerConfig.default()
        cutoff = now - timedelta(days=config.risk.stale_after_days)
    """

    risk: RiskConfig = field(default_factory=RiskConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    follow_up: FollowUpConfig = field(default_factory=FollowUpConfig)

    # Feature flags
    auto_create_tasks: bool = True

    @classmethod
    def default(cls) -> "TrackerConfig":
        """Create config with all defaults."""
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "AGENCY_") -> "TrackerConfig":
        """Create config from environment variables.

        Example: AGENCY_STALE_AFTER_DAYS=5
        """
        risk_overrides = {}
        stale_days = os.getenv(f"{prefix}STALE_AFTER_DAYS")
        if stale_days:
            risk_overrides["stale_after_days"] = int(stale_days)
        cooldown = os.getenv(f"{prefix}REMIND_COOLDOWN_HOURS")
        if cooldown:
            risk_overrides["remind_cooldown_hours"] = int(cooldown)

        overrides = {}
        if risk_overrides:
            overrides["risk"] = RiskConfig(**risk_overrides)
        country_prefix = os.getenv(f"{prefix}PHONE_COUNTRY_PREFIX")
        if country_prefix:
            overrides["follow_up"] = FollowUpConfig(country_prefix=country_prefix)
        auto_create = os.getenv(f"{prefix}AUTO_CREATE_TASKS")
        if auto_create:
            overrides["auto_create_tasks"] = auto_create.lower() == "true"

        return cls(**overrides)
