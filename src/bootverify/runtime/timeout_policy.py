"""Central timeout policy definitions and resolution helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TimeoutDomain(str, Enum):
    """Logical command domains with distinct timeout behavior."""

    STAGE_BUILD = "stage_build"
    ARTIFACT_INVOCATION = "artifact_invocation"


@dataclass(frozen=True, slots=True)
class SignalPolicy:
    """Process signaling behavior when the timeout is crossed."""

    terminate_grace_seconds: float


@dataclass(frozen=True, slots=True)
class TimeoutPolicy:
    """Resolved policy for a timeout domain."""

    domain: TimeoutDomain
    default_timeout_seconds: float
    min_timeout_seconds: float
    max_timeout_seconds: float
    use_process_group: bool
    signal: SignalPolicy


class TimeoutPolicyRegistry:
    """Registry that resolves timeout policies and per-run limits."""

    def __init__(
        self,
        policies: dict[TimeoutDomain, TimeoutPolicy] | None = None,
    ) -> None:
        self._policies = policies or {
            TimeoutDomain.STAGE_BUILD: TimeoutPolicy(
                domain=TimeoutDomain.STAGE_BUILD,
                default_timeout_seconds=1800.0,
                min_timeout_seconds=30.0,
                max_timeout_seconds=7200.0,
                use_process_group=True,
                signal=SignalPolicy(terminate_grace_seconds=15.0),
            ),
            TimeoutDomain.ARTIFACT_INVOCATION: TimeoutPolicy(
                domain=TimeoutDomain.ARTIFACT_INVOCATION,
                default_timeout_seconds=120.0,
                min_timeout_seconds=0.1,
                max_timeout_seconds=1800.0,
                use_process_group=True,
                signal=SignalPolicy(terminate_grace_seconds=2.0),
            ),
        }

    def policy_for(self, domain: TimeoutDomain) -> TimeoutPolicy:
        """Return policy for a specific timeout domain."""
        return self._policies[domain]

    def timeout_for(
        self,
        domain: TimeoutDomain,
        requested_timeout_seconds: float | None = None,
    ) -> float:
        """Resolve the wall-clock limit for one command run."""
        policy = self.policy_for(domain)
        base = (
            requested_timeout_seconds
            if requested_timeout_seconds is not None
            else policy.default_timeout_seconds
        )
        return self._clamp(
            base,
            policy.min_timeout_seconds,
            policy.max_timeout_seconds,
        )

    @staticmethod
    def _clamp(value: float, minimum: float, maximum: float) -> float:
        return max(minimum, min(value, maximum))


_DEFAULT_TIMEOUT_POLICY_REGISTRY = TimeoutPolicyRegistry()


def get_timeout_policy_registry() -> TimeoutPolicyRegistry:
    """Return shared timeout policy registry."""
    return _DEFAULT_TIMEOUT_POLICY_REGISTRY
