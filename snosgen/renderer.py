"""
renderer.py

Responsibility: Deterministically render the container entrypoint scripts into a
directory that can be bind-mounted read-only.

Rules:
- Walk template files in sorted order to ensure deterministic output.
- Files ending in `.j2` are rendered with the provided context and lose the suffix.
- Any other file is copied byte-for-byte.
- File permissions are copied from the template (entrypoints must stay executable).

This module intentionally does NOT know about docker or CLI parsing.
"""

from __future__ import annotations

import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined, TemplateError

TEMPLATE_SUFFIX = ".j2"

# Entrypoint templates shipped with the package.
ENTRYPOINT_TEMPLATES_DIR = Path(__file__).resolve().parent / "entrypoints"

COMPILE_ENTRYPOINT = "snos.sh"
HASH_ENTRYPOINT = "hash_program.py"


class RenderError(RuntimeError):
    pass


@dataclass(frozen=True)
class RenderResult:
    rendered_files: int
    copied_files: int


def _iter_template_files(template_dir: Path) -> list[Path]:
    """Template files keyed by their POSIX relative path, so ordering is platform-independent."""
    return sorted(
        (p for p in template_dir.rglob("*") if p.is_file()),
        key=lambda p: p.relative_to(template_dir).as_posix(),
    )


def render_entrypoints(
    *,
    destination_dir: str | Path,
    context: dict[str, Any],
    template_dir: str | Path = ENTRYPOINT_TEMPLATES_DIR,
) -> RenderResult:
    """
    Render/copy the entrypoint templates into destination_dir, overwriting in place.
    """
    tpl_dir = Path(template_dir).resolve()
    dst_dir = Path(destination_dir).resolve()

    if not tpl_dir.is_dir():
        raise RenderError(f"Template directory not found: {tpl_dir}")

    env = Environment(
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )

    rendered = 0
    copied = 0

    for src_path in _iter_template_files(tpl_dir):
        rel = src_path.relative_to(tpl_dir)
        dst_path = dst_dir / rel
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        if src_path.suffix != TEMPLATE_SUFFIX:
            shutil.copy2(src_path, dst_path)
            copied += 1
            continue

        dst_path = dst_path.with_suffix("")
        try:
            out = env.from_string(src_path.read_text(encoding="utf-8")).render(**context)
        except TemplateError as e:
            raise RenderError(f"Failed rendering entrypoint template: {rel}") from e
        # Normalize newlines: the scripts run inside Linux containers.
        dst_path.write_text(out, encoding="utf-8", newline="\n")
        shutil.copymode(src_path, dst_path)
        # Entrypoints are executed directly by the container runtime.
        dst_path.chmod(dst_path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        rendered += 1

    return RenderResult(rendered_files=rendered, copied_files=copied)
