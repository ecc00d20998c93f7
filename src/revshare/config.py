"""
revshare/config.py

Configuration constants and the engine configuration dataclass.

Settings can be provided:
1. Programmatically: EngineConfig(window_duration=3600)
2. From the environment: EngineConfig.from_env() (REVSHARE_* variables)
"""

import logging
import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger("revshare.config")


# ============================================================================
# DEFAULTS
# ============================================================================

# Collection window: fixed at open time, never extended
DEFAULT_WINDOW_DURATION = 24 * 60 * 60      # 24 hours

# Broadcast attempts per transfer before it becomes burn-eligible
DEFAULT_MAX_ATTEMPTS = 3

# Scheduler scan interval (seconds), must not exceed one minute
DEFAULT_TICK_INTERVAL = 60
MAX_TICK_INTERVAL = 60

# How long a claim may hold a transfer row while broadcasting
DEFAULT_CLAIM_LEASE_SECONDS = 120

# Share of revenue allocated to holders, in basis points (10000 = 100%)
DEFAULT_HOLDER_SHARE_BPS = 10_000
BPS_DENOMINATOR = 10_000

# Distributions stuck in CLOSED_BURNING longer than this are resumed
DEFAULT_STALLED_CLOSE_SECONDS = 300

# memory:// or any SQLAlchemy database URL
DEFAULT_LEDGER_URL = "memory://"

ENV_PREFIX = "REVSHARE_"


@dataclass
class EngineConfig:
    """
    Runtime settings for the distribution engine.

    Usage:
        config = EngineConfig.from_env()
        config = EngineConfig(window_duration=3600, max_attempts=5)
    """

    window_duration: int = DEFAULT_WINDOW_DURATION
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    tick_interval: int = DEFAULT_TICK_INTERVAL
    claim_lease_seconds: int = DEFAULT_CLAIM_LEASE_SECONDS
    holder_share_bps: int = DEFAULT_HOLDER_SHARE_BPS
    stalled_close_seconds: int = DEFAULT_STALLED_CLOSE_SECONDS
    ledger_url: str = DEFAULT_LEDGER_URL

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError for out-of-range settings."""
        if self.window_duration <= 0:
            raise ConfigError(f"window_duration must be positive, got {self.window_duration}")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if not 1 <= self.tick_interval <= MAX_TICK_INTERVAL:
            raise ConfigError(
                f"tick_interval must be between 1 and {MAX_TICK_INTERVAL} seconds, "
                f"got {self.tick_interval}"
            )
        if self.claim_lease_seconds <= 0:
            raise ConfigError(
                f"claim_lease_seconds must be positive, got {self.claim_lease_seconds}"
            )
        if not 0 < self.holder_share_bps <= BPS_DENOMINATOR:
            raise ConfigError(
                f"holder_share_bps must be in (0, {BPS_DENOMINATOR}], "
                f"got {self.holder_share_bps}"
            )
        if self.stalled_close_seconds <= 0:
            raise ConfigError(
                f"stalled_close_seconds must be positive, got {self.stalled_close_seconds}"
            )
        if not self.ledger_url:
            raise ConfigError("ledger_url must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """
        Build a config from REVSHARE_* environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            EngineConfig with defaults for unset variables
        """
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}

        for name in ('window_duration', 'max_attempts', 'tick_interval',
                     'claim_lease_seconds', 'holder_share_bps', 'stalled_close_seconds'):
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None or raw.strip() == "":
                continue
            try:
                kwargs[name] = int(raw.strip())
            except ValueError:
                raise ConfigError(f"Invalid {ENV_PREFIX}{name.upper()}: {raw!r} is not an integer")

        ledger_url = env.get(ENV_PREFIX + "LEDGER_URL")
        if ledger_url:
            kwargs['ledger_url'] = ledger_url.strip()

        config = cls(**kwargs)
        logger.debug(f"Loaded engine config from environment: {config.to_dict()}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
