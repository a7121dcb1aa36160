"""Pydantic models for configuration schema."""

from typing import Dict, Optional
from pydantic import BaseModel, Field, field_validator

from tgw_converge.ec2.waiters import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUTS

WORKSPACES_DIRECTORY_KIND = "workspaces-directory"

KNOWN_TIMEOUT_KINDS = sorted(set(DEFAULT_TIMEOUTS) | {WORKSPACES_DIRECTORY_KIND})


class AWSConfig(BaseModel):
    """Which account/region to talk to."""

    region: Optional[str] = Field(None, description="AWS region, e.g. us-east-1")
    profile: Optional[str] = Field(None, description="Named profile from ~/.aws/config")

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: Optional[str]) -> Optional[str]:
        """Validate AWS region format."""
        if v is None:
            return v
        parts = v.split("-")
        if len(parts) < 3 or not parts[-1].isdigit():
            raise ValueError(f"Invalid AWS region: {v}")
        return v


class PollingConfig(BaseModel):
    """Poll interval and per-kind timeouts for the convergence engine."""

    interval: float = Field(DEFAULT_POLL_INTERVAL, ge=1, le=300, description="Seconds between polls")
    timeouts: Dict[str, float] = Field(
        default_factory=dict, description="Timeout in seconds keyed by resource kind"
    )

    @field_validator("timeouts")
    @classmethod
    def validate_timeouts(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject unknown kinds and non-positive timeouts."""
        for kind, seconds in v.items():
            if kind not in KNOWN_TIMEOUT_KINDS:
                raise ValueError(
                    f"Unknown resource kind '{kind}'. Must be one of: {', '.join(KNOWN_TIMEOUT_KINDS)}"
                )
            if seconds <= 0:
                raise ValueError(f"Timeout for '{kind}' must be positive: {seconds}")
        return v

    def timeout_for(self, kind: str) -> float:
        if kind in self.timeouts:
            return self.timeouts[kind]
        if kind == WORKSPACES_DIRECTORY_KIND:
            return 600.0
        return DEFAULT_TIMEOUTS[kind]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("info", pattern="^(debug|info|warning|error)$")
    directory: str = Field(".tgw-converge/logs", description="Where the daily JSONL log file is written")


class Settings(BaseModel):
    """Top-level configuration."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def wait_overrides(self) -> Dict[str, object]:
        """Keyword arguments for ec2.waiters.Waiter."""
        return {
            "poll_interval": self.polling.interval,
            "timeouts": {
                kind: seconds
                for kind, seconds in self.polling.timeouts.items()
                if kind in DEFAULT_TIMEOUTS
            },
        }
