"""Tests for Stage 0 / Stage 1 artifact construction."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path
from sys import executable

import pytest

from bootverify.config.layout import BootstrapLayout
from bootverify.runtime.command_runner import get_command_runner
from bootverify.runtime.timeout_policy import TimeoutDomain
from bootverify.verify.builder import ArtifactBuilder
from bootverify.verify.errors import BuildFailureError
from bootverify.verify.models import CompilerArtifact, Stage
from bootverify.verify.resources import ResourceManager


@pytest.fixture
def resources(temp_base: Path) -> Iterator[ResourceManager]:
    with ResourceManager(base_dir=temp_base, handle_signals=False) as manager:
        yield manager


def _builder(project: Path, resources: ResourceManager) -> ArtifactBuilder:
    return ArtifactBuilder(BootstrapLayout.load(project), project, resources)


def _invoke(path: Path, *args: str) -> tuple[str, str, int]:
    result = get_command_runner().run(
        command=[path, *args], domain=TimeoutDomain.ARTIFACT_INVOCATION
    )
    return result.stdout, result.stderr, result.effective_exit_code


def test_build_stage0_copies_binary_into_workdir(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project()

    stage0 = _builder(project, resources).build_stage0()

    assert stage0.stage == Stage.STAGE0
    assert stage0.built
    assert stage0.executable_path.name == "fakec_stage0"
    assert stage0.executable_path.parent == resources.workdir()
    assert os.access(stage0.executable_path, os.X_OK)
    assert "Finished release build" in stage0.build_log
    assert (resources.workdir() / "build_stage0.log").is_file()
    assert _invoke(stage0.executable_path, "--version")[0] == "fakec 1.0.0\n"


def test_build_stage0_failure_carries_build_log(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project(build_ok=False)

    with pytest.raises(BuildFailureError) as exc_info:
        _builder(project, resources).build_stage0()

    assert exc_info.value.stage == 0
    assert "status 101" in exc_info.value.reason
    assert "error[E0425]" in exc_info.value.build_log


def test_build_stage0_requires_built_binary(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project()
    layout = BootstrapLayout.from_dict(
        {
            "compiler": "fakec",
            "toolchain": executable,
            "build_command": [executable, "-c", "print('nothing to do')"],
        }
    )

    with pytest.raises(BuildFailureError, match="built binary not found"):
        ArtifactBuilder(layout, project, resources).build_stage0()


def test_build_stage1_delegates_without_self_hosted_source(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project()
    builder = _builder(project, resources)
    stage0 = builder.build_stage0()

    stage1 = builder.build_stage1(stage0)

    assert stage1.delegated
    assert stage1.executable_path.name == "fakec_stage1"
    assert "self-hosted source not found" in stage1.build_log
    for args in (("--version",), ("--self-check",), ("--bogus", "arg with space")):
        assert _invoke(stage1.executable_path, *args) == _invoke(
            stage0.executable_path, *args
        )
    assert _invoke(stage1.executable_path, "--bogus")[2] == 2


def test_build_stage1_uses_stage0_on_self_hosted_source(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project(self_hosted=True)
    builder = _builder(project, resources)
    stage0 = builder.build_stage0()

    stage1 = builder.build_stage1(stage0)

    assert not stage1.delegated
    assert stage1.built
    assert stage0.executable_path.name in stage1.build_log
    assert _invoke(stage1.executable_path, "--version")[0] == "fakec 1.0.0\n"


def test_build_stage1_failure_is_fatal(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project(self_hosted=True, fail_self_build=True)
    builder = _builder(project, resources)
    stage0 = builder.build_stage0()

    with pytest.raises(BuildFailureError) as exc_info:
        builder.build_stage1(stage0)

    assert exc_info.value.stage == 1
    assert "cannot build self-hosted compiler" in exc_info.value.build_log


def test_build_stage1_requires_built_stage0(
    make_project: Callable[..., Path], resources: ResourceManager
) -> None:
    project = make_project()
    unbuilt = CompilerArtifact(
        stage=Stage.STAGE0, executable_path=project / "missing", built=False
    )

    with pytest.raises(ValueError):
        _builder(project, resources).build_stage1(unbuilt)
