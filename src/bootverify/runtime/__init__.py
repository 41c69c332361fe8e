"""Runtime primitives shared by the build and check stages."""

from bootverify.runtime.command_runner import (
    CommandEvent,
    CommandResult,
    CommandRunner,
    get_command_runner,
)
from bootverify.runtime.timeout_policy import TimeoutDomain, get_timeout_policy_registry

__all__ = [
    "CommandEvent",
    "CommandResult",
    "CommandRunner",
    "TimeoutDomain",
    "get_command_runner",
    "get_timeout_policy_registry",
]
