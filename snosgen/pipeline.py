"""
pipeline.py

Responsibility: Run the build as one linear, fail-fast sequence.

    Resolve -> Prepare -> Compile -> Format -> Hash -> Done

Each stage only starts when the previous one succeeded; the first failure ends the
run with the failing command's exit status. Nothing is retried or cleaned up. All
hand-off between stages happens through the output directory.
"""

from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

import structlog

from snosgen.config import BuildConfig, Layout
from snosgen.docker import ContainerRun, DockerClient, InvocationFailed, Mount
from snosgen.renderer import COMPILE_ENTRYPOINT, HASH_ENTRYPOINT, render_entrypoints

logger = structlog.get_logger(__name__)

OUTPUT_MOUNT = "/output"
PROGRAM_MOUNT = "/program.json"
ENTRY_MOUNT = "/entry"


class Stage(str, Enum):
    RESOLVE = "resolve"
    PREPARE = "prepare"
    COMPILE = "compile"
    FORMAT = "format"
    HASH = "hash"
    DONE = "done"


class StageFailed(RuntimeError):
    def __init__(self, stage: Stage, exit_code: int, message: str) -> None:
        super().__init__(f"{stage.value} failed: {message}")
        self.stage = stage
        self.exit_code = exit_code


@dataclass(frozen=True)
class PipelineResult:
    artifact: Path
    stages: tuple[Stage, ...]


def artifact_path(config: BuildConfig, layout: Layout) -> Path:
    return layout.output_dir / config.artifact_name


def entrypoint_context(config: BuildConfig) -> dict[str, object]:
    return {
        "program_name": config.program_name,
        "artifact_name": config.artifact_name,
        "cairo_source": config.cairo_source,
        "output_mount": OUTPUT_MOUNT,
        "program_mount": PROGRAM_MOUNT,
        "use_poseidon": config.use_poseidon,
    }


def plan_steps(config: BuildConfig, layout: Layout) -> list[tuple[Stage, ContainerRun]]:
    """
    Return the three container invocations, in execution order.
    """
    output_dir = layout.output_dir
    entrypoints = layout.entrypoints_dir

    compile_step = ContainerRun(
        image=config.compiler,
        mounts=(
            Mount(output_dir, OUTPUT_MOUNT),
            Mount(entrypoints / COMPILE_ENTRYPOINT, ENTRY_MOUNT, read_only=True),
        ),
        env={"CAIRO_VERSION": config.cairo_version},
        entrypoint=ENTRY_MOUNT,
    )
    format_step = ContainerRun(
        image=config.formatter,
        mounts=(Mount(output_dir, OUTPUT_MOUNT),),
        user="root",
        args=("--write", f"{OUTPUT_MOUNT}/{config.artifact_name}"),
    )
    hash_step = ContainerRun(
        image=config.hasher_image,
        mounts=(
            Mount(artifact_path(config, layout), PROGRAM_MOUNT, read_only=True),
            Mount(entrypoints / HASH_ENTRYPOINT, ENTRY_MOUNT, read_only=True),
        ),
        entrypoint=ENTRY_MOUNT,
    )
    return [
        (Stage.COMPILE, compile_step),
        (Stage.FORMAT, format_step),
        (Stage.HASH, hash_step),
    ]


def prepare(config: BuildConfig, layout: Layout) -> None:
    """
    Create the output directory and (re)write the entrypoint scripts. Idempotent.
    """
    layout.output_dir.mkdir(parents=True, exist_ok=True)
    result = render_entrypoints(
        destination_dir=layout.entrypoints_dir,
        context=entrypoint_context(config),
    )
    logger.debug(
        "entrypoints_rendered",
        destination=str(layout.entrypoints_dir),
        rendered=result.rendered_files,
        copied=result.copied_files,
    )


def run_pipeline(
    config: BuildConfig,
    layout: Layout,
    *,
    client: DockerClient,
    dry_run: bool = False,
    out: TextIO | None = None,
) -> PipelineResult:
    """
    Run the build. In dry-run mode the commands are written to `out` (stdout by
    default) and nothing is created or executed.
    """
    stream = out if out is not None else sys.stdout
    steps = plan_steps(config, layout)
    completed: list[Stage] = [Stage.RESOLVE]
    log = logger.bind(output_dir=str(layout.output_dir), dry_run=dry_run)

    if dry_run:
        for _stage, container in steps:
            stream.write(shlex.join(client.command(container)) + "\n")
        return PipelineResult(artifact=artifact_path(config, layout), stages=tuple(completed))

    prepare(config, layout)
    completed.append(Stage.PREPARE)

    for stage, container in steps:
        log.info("stage_started", stage=stage.value, image=container.image.reference)
        try:
            client.run(container)
        except InvocationFailed as e:
            log.error("stage_failed", stage=stage.value, exit_code=e.exit_code)
            raise StageFailed(stage, e.exit_code, str(e)) from e

        if stage is Stage.COMPILE and not artifact_path(config, layout).is_file():
            log.error("stage_failed", stage=stage.value, reason="artifact missing")
            raise StageFailed(stage, 1, f"compiler produced no {config.artifact_name}")

        log.info("stage_completed", stage=stage.value)
        completed.append(stage)

    completed.append(Stage.DONE)
    return PipelineResult(artifact=artifact_path(config, layout), stages=tuple(completed))
