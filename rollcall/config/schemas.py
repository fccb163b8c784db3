"""
Configuration Schemas for Rollcall.

Security:
    Secrets use SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str | int) -> timedelta:
    """
    Parse a duration like "7d", "24h", "30m", "45s" or a number of seconds.

    Raises:
        ValueError: Unrecognized format
    """
    if isinstance(value, int):
        return timedelta(seconds=value)
    match = _DURATION_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class EnvironmentProfile(BaseModel):
    """Per-environment defaults (development vs production)."""

    log_level: str = "INFO"
    jwt_issuer: str = "rollcall-api"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    expose_route_listing: bool = False


ENVIRONMENT_PROFILES: dict[str, EnvironmentProfile] = {
    "development": EnvironmentProfile(
        log_level="DEBUG",
        jwt_issuer="rollcall-api-dev",
        cors_origins=["*"],
        expose_route_listing=True,
    ),
    "production": EnvironmentProfile(
        log_level="INFO",
        jwt_issuer="rollcall-api",
        cors_origins=[],
        expose_route_listing=False,
    ),
}


class AppSettings(BaseModel):
    """
    Application settings model.

    Built from ROLLCALL_* environment variables by
    rollcall.app.dependencies.get_settings().
    """

    # Service identity
    service_name: str = "rollcall"
    environment: Literal["development", "production"] = "development"
    debug: bool = False
    port: int = 5111

    # Storage
    storage_backend: Literal["memory", "mongo"] = "memory"
    mongodb_url: SecretStr = Field(
        default=SecretStr("mongodb://localhost:27017"), description="MongoDB connection URL"
    )
    mongodb_database: str = "rollcall"

    # Tokens
    long_token_secret: SecretStr = Field(..., description="Signing secret for access tokens")
    short_token_secret: SecretStr = Field(..., description="Signing secret for refresh tokens")
    long_token_expiry: str = "7d"
    short_token_expiry: str = "24h"
    jwt_issuer: str | None = None

    # HTTP
    cors_origins: list[str] | None = None

    @field_validator("long_token_expiry", "short_token_expiry")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def profile(self) -> EnvironmentProfile:
        return ENVIRONMENT_PROFILES[self.environment]

    @property
    def issuer(self) -> str:
        return self.jwt_issuer or self.profile.jwt_issuer

    @property
    def allowed_origins(self) -> list[str]:
        if self.cors_origins is not None:
            return self.cors_origins
        return self.profile.cors_origins

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else self.profile.log_level

    @property
    def long_token_ttl(self) -> timedelta:
        return parse_duration(self.long_token_expiry)

    @property
    def short_token_ttl(self) -> timedelta:
        return parse_duration(self.short_token_expiry)
