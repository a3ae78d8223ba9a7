from __future__ import annotations

from pathlib import Path

import pytest

from snosgen.config import BuildConfig, Layout, resolve_layout
from snosgen.docker import ContainerRun, DockerClient, InvocationFailed


class RecordingClient(DockerClient):
    """DockerClient that records invocations instead of spawning docker.

    Runs whose image/args match `fail_on` exit with `exit_code`. A compile run
    (one with CAIRO_VERSION set) writes a fake artifact into the output mount.
    """

    def __init__(self, *, elevation=(), fail_on: str | None = None, exit_code: int = 1, write_artifact: bool = True):
        super().__init__(elevation=elevation)
        self.calls: list[list[str]] = []
        self.fail_on = fail_on
        self.exit_code = exit_code
        self.write_artifact = write_artifact

    def run(self, container: ContainerRun) -> None:
        argv = self.command(container)
        self.calls.append(argv)
        if self.fail_on is not None and self.fail_on in " ".join(argv):
            raise InvocationFailed(argv, self.exit_code)
        if "CAIRO_VERSION" in container.env and self.write_artifact:
            output = next(m.source for m in container.mounts if m.target == "/output")
            (output / "snos.json").write_text('{"prime": "0x1"}\n', encoding="utf-8")


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "scripts").mkdir(parents=True)
    (root / "scripts" / "generate_snos.py").write_text("", encoding="utf-8")
    return root


@pytest.fixture()
def layout(repo: Path) -> Layout:
    return resolve_layout(repo / "scripts" / "generate_snos.py")


@pytest.fixture()
def config() -> BuildConfig:
    return BuildConfig()


@pytest.fixture()
def recording_client() -> type[RecordingClient]:
    return RecordingClient
