"""Tests for bootstrap layout loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from bootverify.config.layout import LAYOUT_FILENAME, BootstrapLayout


def test_layout_defaults_without_file(tmp_path: Path) -> None:
    layout = BootstrapLayout.load(tmp_path)

    assert layout == BootstrapLayout()
    assert layout.stage0_name == "oviec_stage0"
    assert layout.stage1_name == "oviec_stage1"
    assert layout.build_command == ("cargo", "build", "--release", "--workspace")
    assert layout.sample_program == "examples/hello.ov"


def test_layout_file_overrides_defaults(tmp_path: Path) -> None:
    (tmp_path / LAYOUT_FILENAME).write_text(
        "toolchain: make\n"
        "build_command: make release\n"
        "sample_program: samples/fib.ov\n"
        "invocation_timeout_seconds: 15\n",
        encoding="utf-8",
    )

    layout = BootstrapLayout.load(tmp_path)

    assert layout.toolchain == "make"
    assert layout.build_command == ("make", "release")
    assert layout.sample_program == "samples/fib.ov"
    assert layout.invocation_timeout_seconds == 15.0
    assert layout.compiler == "oviec"


def test_string_build_command_honours_shell_quoting(tmp_path: Path) -> None:
    (tmp_path / LAYOUT_FILENAME).write_text(
        "build_command: make \"release build\" 'OUT=my dir'\n",
        encoding="utf-8",
    )

    layout = BootstrapLayout.load(tmp_path)

    assert layout.build_command == ("make", "release build", "OUT=my dir")


def test_unbalanced_quotes_fall_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / LAYOUT_FILENAME).write_text(
        "build_command: make \"release\n", encoding="utf-8"
    )

    assert BootstrapLayout.load(tmp_path) == BootstrapLayout()


def test_compiler_name_drives_derived_paths() -> None:
    layout = BootstrapLayout.from_dict({"compiler": "novac"})

    assert layout.built_binary == "target/release/novac"
    assert layout.self_hosted_source == "novac/src/main.ov"
    assert layout.stage1_name == "novac_stage1"


def test_explicit_paths_win_over_derived_ones() -> None:
    layout = BootstrapLayout.from_dict(
        {"compiler": "novac", "built_binary": "out/novac-bin"}
    )

    assert layout.built_binary == "out/novac-bin"
    assert layout.self_hosted_source == "novac/src/main.ov"


def test_unknown_keys_are_kept_aside() -> None:
    layout = BootstrapLayout.from_dict({"strict": True})

    assert layout.extra == {"strict": True}
    assert layout == BootstrapLayout()


@pytest.mark.parametrize(
    "data",
    [
        {"build_command": []},
        {"build_command": ["cargo", 1]},
        {"toolchain": ""},
        {"sample_program": 3},
        {"build_timeout_seconds": "slow"},
        {"invocation_timeout_seconds": True},
    ],
)
def test_invalid_values_are_rejected(data: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        BootstrapLayout.from_dict(data)


@pytest.mark.parametrize(
    "content",
    ["- just\n- a list\n", "toolchain: [unclosed\n", "toolchain: ''\n"],
)
def test_invalid_layout_file_falls_back_to_defaults(
    tmp_path: Path, content: str
) -> None:
    (tmp_path / LAYOUT_FILENAME).write_text(content, encoding="utf-8")

    assert BootstrapLayout.load(tmp_path) == BootstrapLayout()


def test_empty_layout_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / LAYOUT_FILENAME).write_text("", encoding="utf-8")

    assert BootstrapLayout.load(tmp_path) == BootstrapLayout()


def test_resolve_keeps_absolute_paths(tmp_path: Path) -> None:
    layout = BootstrapLayout()

    assert layout.resolve(tmp_path, "examples/hello.ov") == (
        tmp_path / "examples" / "hello.ov"
    )
    assert layout.resolve(tmp_path, "/opt/hello.ov") == Path("/opt/hello.ov")
