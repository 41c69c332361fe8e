"""Bootstrap Verification System.

Proves that a Stage 1 compiler (built by the compiler itself) behaves like
the Stage 0 compiler built by a trusted toolchain.

Components:
- probe: Toolchain availability check
- builder: Stage 0 / Stage 1 artifact construction
- runner: Ordered equivalence checks
- compare: Exact output comparison
- report: Report rendering
- resources: Scoped cleanup of transient state
- orchestrator: Full verification pipeline

Usage:
    bootverify                 # Verify the project in the current directory
    bootverify -w ../compiler  # Verify another project
"""
from __future__ import annotations

from bootverify.verify.models import (
    CapturedOutput,
    CheckKind,
    CheckVerdict,
    ComparisonResult,
    CompilerArtifact,
    InvocationOutcome,
    Stage,
    VerificationReport,
    VerificationStatus,
)

__all__ = [
    "CapturedOutput",
    "CheckKind",
    "CheckVerdict",
    "ComparisonResult",
    "CompilerArtifact",
    "InvocationOutcome",
    "Stage",
    "VerificationReport",
    "VerificationStatus",
]
