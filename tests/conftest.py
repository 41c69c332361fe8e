from __future__ import annotations

import io
import sys
from collections.abc import Callable
from pathlib import Path

import pytest
import yaml
from rich.console import Console

FAKE_COMPILER = '''#!{python}
"""Fake compiler used by bootverify tests."""
import os
import shutil
import sys

args = sys.argv[1:]
if args == ["--version"]:
    print({version!r})
    sys.exit(0)
if args == ["--self-check"]:
    print("self-check: ok")
    sys.exit(0)
if len(args) == 4 and args[0] == "build" and args[2] == "-o":
    if {fail_self_build!r}:
        sys.stderr.write("error: cannot build self-hosted compiler\\n")
        sys.exit(1)
    shutil.copyfile(sys.argv[0], args[3])
    sys.exit(0)
if len(args) == 3 and args[1] == "-o":
    if {fail_compile!r}:
        sys.stderr.write("error: compilation failed\\n")
        sys.exit(1)
    with open(args[0], encoding="utf-8") as fh:
        source = fh.read()
    with open(args[2], "w", encoding="utf-8") as fh:
        fh.write("#!{python}\\nimport sys\\nsys.stdout.write(" + repr(source) + ")\\n")
    os.chmod(args[2], 0o755)
    sys.stderr.write("compiled " + os.path.basename(args[0]) + "\\n")
    sys.exit(0)
sys.stderr.write("usage: fakec [--version | --self-check | SRC -o OUT]\\n")
sys.exit(2)
'''

BUILD_SCRIPT = """import os
import shutil

os.makedirs(os.path.join("target", "release"), exist_ok=True)
target = os.path.join("target", "release", "fakec")
shutil.copyfile("fakec.py", target)
os.chmod(target, 0o755)
print("Finished release build")
"""

FAILING_BUILD_SCRIPT = """import sys

sys.stderr.write("error[E0425]: cannot find value\\n")
sys.exit(101)
"""

SAMPLE_PROGRAM = 'fn main() {\n    print("Hello, bootstrap!")\n}\n'


def fake_compiler_source(
    *,
    version: str = "fakec 1.0.0",
    fail_self_build: bool = False,
    fail_compile: bool = False,
) -> str:
    """Source of an executable fake compiler script."""
    return FAKE_COMPILER.format(
        python=sys.executable,
        version=version,
        fail_self_build=fail_self_build,
        fail_compile=fail_compile,
    )


@pytest.fixture
def fake_compiler(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing standalone fake compiler executables."""

    def _write(name: str, **options: object) -> Path:
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            fake_compiler_source(**options),  # type: ignore[arg-type]
            encoding="utf-8",
        )
        path.chmod(0o755)
        return path

    return _write


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., Path]:
    """Factory for fake compiler projects with a bootverify.yaml layout."""

    def _make(
        *,
        name: str = "project",
        toolchain: str = sys.executable,
        build_ok: bool = True,
        sample: bool = True,
        self_hosted: bool = False,
        **compiler_options: object,
    ) -> Path:
        root = tmp_path / name
        root.mkdir()
        (root / "fakec.py").write_text(
            fake_compiler_source(**compiler_options),  # type: ignore[arg-type]
            encoding="utf-8",
        )
        (root / "build.py").write_text(
            BUILD_SCRIPT if build_ok else FAILING_BUILD_SCRIPT,
            encoding="utf-8",
        )
        if sample:
            (root / "examples").mkdir()
            (root / "examples" / "hello.ov").write_text(
                SAMPLE_PROGRAM, encoding="utf-8"
            )
        if self_hosted:
            (root / "fakec" / "src").mkdir(parents=True)
            (root / "fakec" / "src" / "main.ov").write_text(
                "// self-hosted compiler\n", encoding="utf-8"
            )

        layout = {
            "compiler": "fakec",
            "toolchain": toolchain,
            "build_command": [sys.executable, "build.py"],
            "invocation_timeout_seconds": 30,
            "build_timeout_seconds": 60,
        }
        (root / "bootverify.yaml").write_text(
            yaml.safe_dump(layout, sort_keys=False), encoding="utf-8"
        )
        return root

    return _make


@pytest.fixture
def temp_base(tmp_path: Path) -> Path:
    """Parent directory for run temp dirs, so leftovers can be inspected."""
    base = tmp_path / "run-tmp"
    base.mkdir()
    return base


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None)
