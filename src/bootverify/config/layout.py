"""Compiler project layout for a bootstrap verification run.

Defaults describe a cargo-built compiler with an optional self-hosted
source tree. A project can override any of them with a
``bootverify.yaml`` file at its root:

    compiler: oviec
    toolchain: cargo
    build_command: [cargo, build, --release, --workspace]
    built_binary: target/release/oviec
    self_hosted_source: oviec/src/main.ov
    sample_program: examples/hello.ov
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

LAYOUT_FILENAME = "bootverify.yaml"

DEFAULT_COMPILER = "oviec"


@dataclass(frozen=True, slots=True)
class BootstrapLayout:
    """Where to find the inputs of a bootstrap run, and what to call outputs."""

    compiler: str = DEFAULT_COMPILER
    toolchain: str = "cargo"
    build_command: tuple[str, ...] = ("cargo", "build", "--release", "--workspace")
    built_binary: str = f"target/release/{DEFAULT_COMPILER}"
    self_hosted_source: str = f"{DEFAULT_COMPILER}/src/main.ov"
    sample_program: str = "examples/hello.ov"
    test_dir_name: str = "bootstrap_test"
    build_timeout_seconds: float | None = None
    invocation_timeout_seconds: float | None = None
    toolchain_install_hint: str = "Install Rust: https://rustup.rs/"
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def stage0_name(self) -> str:
        return f"{self.compiler}_stage0"

    @property
    def stage1_name(self) -> str:
        return f"{self.compiler}_stage1"

    def resolve(self, project_root: Path, relative: str) -> Path:
        """Resolve a layout path against the project root."""
        path = Path(relative)
        return path if path.is_absolute() else project_root / path

    @classmethod
    def load(cls, project_root: Path) -> "BootstrapLayout":
        """Load the layout for a project, falling back to defaults."""
        layout_path = project_root / LAYOUT_FILENAME
        if not layout_path.exists():
            logger.debug(
                "No %s in %s, using default layout", LAYOUT_FILENAME, project_root
            )
            return cls()

        try:
            raw_data = yaml.safe_load(layout_path.read_text(encoding="utf-8"))
            if raw_data is None:
                return cls()
            if not isinstance(raw_data, dict):
                raise ValueError("Layout file must contain a mapping")
            layout = cls.from_dict(raw_data)
            logger.info("Loaded bootstrap layout from %s", layout_path)
            return layout
        except (ValueError, yaml.YAMLError, OSError) as e:
            logger.warning("Failed to load layout from %s: %s", layout_path, e)
            return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BootstrapLayout":
        """Build a layout from a mapping, validating field types."""
        known = {f.name for f in fields(cls)} - {"extra"}
        layout = cls()
        updates: dict[str, Any] = {}
        extra: dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                extra[key] = value
                continue
            if key == "build_command":
                if isinstance(value, str):
                    value = tuple(shlex.split(value))
                elif isinstance(value, list) and all(
                    isinstance(part, str) for part in value
                ):
                    value = tuple(value)
                else:
                    raise ValueError(
                        "build_command must be a string or list of strings"
                    )
                if not value:
                    raise ValueError("build_command must not be empty")
            elif key.endswith("_timeout_seconds"):
                if value is not None and (
                    isinstance(value, bool) or not isinstance(value, (int, float))
                ):
                    raise ValueError(f"{key} must be a number")
                if value is not None:
                    value = float(value)
            elif not isinstance(value, str) or not value:
                raise ValueError(f"{key} must be a non-empty string")
            updates[key] = value

        if "compiler" in updates:
            compiler = updates["compiler"]
            updates.setdefault("built_binary", f"target/release/{compiler}")
            updates.setdefault("self_hosted_source", f"{compiler}/src/main.ov")

        if extra:
            logger.warning("Ignoring unknown layout keys: %s", ", ".join(sorted(extra)))
        return replace(layout, **updates, extra=extra)
