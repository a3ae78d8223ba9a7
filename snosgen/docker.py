"""
docker.py

Responsibility: Isolate all interaction with the `docker` CLI.

This module must be the only place that:
- Builds `docker run` / `docker image inspect` command lines
- Spawns the docker executable
- Interprets its exit status

Container stdout/stderr are inherited, never captured: tool diagnostics and the
program hash reach the caller untouched.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

import structlog

from snosgen.config import ToolImage

logger = structlog.get_logger(__name__)

# Exit status a POSIX shell reports for a command that cannot be found.
EXIT_COMMAND_NOT_FOUND = 127


class DockerError(RuntimeError):
    pass


class InvocationFailed(DockerError):
    def __init__(self, argv: Sequence[str], exit_code: int, detail: str = "") -> None:
        self.argv = list(argv)
        self.exit_code = exit_code
        msg = f"Command exited with status {exit_code}: {' '.join(self.argv)}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


@dataclass(frozen=True)
class Mount:
    """A bind mount of a host path into the container."""

    source: Path
    target: str
    read_only: bool = False

    def to_arg(self) -> str:
        spec = f"{self.source}:{self.target}"
        return f"{spec}:ro" if self.read_only else spec


@dataclass(frozen=True)
class ContainerRun:
    image: ToolImage
    mounts: tuple[Mount, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    entrypoint: str | None = None
    user: str | None = None
    args: tuple[str, ...] = ()
    remove: bool = True

    def argv(self, *, elevation: Sequence[str] = (), executable: str = "docker") -> list[str]:
        cmd = [*elevation, executable, "run"]
        if self.remove:
            cmd.append("--rm")
        for m in self.mounts:
            cmd += ["-v", m.to_arg()]
        if self.user:
            cmd += ["--user", self.user]
        for key, value in self.env.items():
            cmd += ["-e", f"{key}={value}"]
        if self.entrypoint:
            cmd += ["--entrypoint", self.entrypoint]
        cmd.append(self.image.reference)
        cmd.extend(self.args)
        return cmd


class DockerClient:
    def __init__(self, *, elevation: Sequence[str] = (), executable: str = "docker") -> None:
        self._elevation = tuple(elevation)
        self._executable = executable

    @property
    def elevation(self) -> tuple[str, ...]:
        return self._elevation

    def command(self, container: ContainerRun) -> list[str]:
        return container.argv(elevation=self._elevation, executable=self._executable)

    def run(self, container: ContainerRun) -> None:
        """
        Run a container to completion, raising InvocationFailed on a non-zero exit.
        """
        argv = self.command(container)
        logger.debug("container_run", image=container.image.reference, argv=argv)
        try:
            completed = subprocess.run(argv, check=False)
        except FileNotFoundError as e:
            raise InvocationFailed(argv, EXIT_COMMAND_NOT_FOUND, f"{argv[0]}: command not found") from e
        if completed.returncode != 0:
            raise InvocationFailed(argv, completed.returncode)

    def image_exists(self, image: ToolImage) -> bool:
        """
        Return True if the image is present in the local image store.
        """
        argv = [*self._elevation, self._executable, "image", "inspect", image.reference]
        try:
            completed = subprocess.run(
                argv,
                check=False,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise InvocationFailed(argv, EXIT_COMMAND_NOT_FOUND, f"{argv[0]}: command not found") from e
        return completed.returncode == 0
