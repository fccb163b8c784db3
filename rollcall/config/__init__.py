"""
Rollcall Configuration

Environment-driven settings with per-environment profiles.
"""

from .schemas import ENVIRONMENT_PROFILES, AppSettings, EnvironmentProfile, parse_duration

__all__ = [
    "AppSettings",
    "EnvironmentProfile",
    "ENVIRONMENT_PROFILES",
    "parse_duration",
]
