"""Argument parser construction for the bootverify CLI."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path

from bootverify import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level CLI parser."""
    parser = argparse.ArgumentParser(
        prog="bootverify",
        description="Verify that a self-hosted Stage 1 compiler matches Stage 0",
    )
    parser.add_argument(
        "--workdir",
        "-w",
        type=Path,
        help="Compiler project root to verify (default: current directory)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Echo captured outputs as checks run and log at DEBUG level",
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Also write the verification report as JSON to this path",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments from argv (or sys.argv when omitted)."""
    parser = build_parser()
    if argv is None:
        return parser.parse_args()
    return parser.parse_args(list(argv))
