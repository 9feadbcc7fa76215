"""Detox test command: runner detection, argument translation and retries."""

from detox_cli.models import (
    ConfigError,
    DetoxError,
    ForwardedInvocation,
    LaunchFailure,
    RunnerInvocationConfig,
    RunnerKind,
    SessionConfig,
)

__all__ = [
    "ConfigError",
    "DetoxError",
    "ForwardedInvocation",
    "LaunchFailure",
    "RunnerInvocationConfig",
    "RunnerKind",
    "SessionConfig",
]
