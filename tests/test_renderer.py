from __future__ import annotations

import os
from pathlib import Path

import pytest

from snosgen.renderer import RenderError, render_entrypoints

CONTEXT = {
    "program_name": "snos",
    "artifact_name": "snos.json",
    "cairo_source": "starkware/starknet/core/os/os.cairo",
    "output_mount": "/output",
    "program_mount": "/program.json",
    "use_poseidon": False,
}


def test_renders_shipped_entrypoints(tmp_path: Path) -> None:
    result = render_entrypoints(destination_dir=tmp_path, context=CONTEXT)
    assert result.rendered_files == 2

    compile_script = tmp_path / "snos.sh"
    hash_script = tmp_path / "hash_program.py"
    assert compile_script.read_text(encoding="utf-8").startswith("#!/bin/sh\n")
    assert '--output "/output/snos.json"' in compile_script.read_text(encoding="utf-8")
    assert 'open("/program.json")' in hash_script.read_text(encoding="utf-8")
    assert "use_poseidon=False" in hash_script.read_text(encoding="utf-8")
    assert os.access(compile_script, os.X_OK)
    assert os.access(hash_script, os.X_OK)


def test_rerender_is_byte_identical(tmp_path: Path) -> None:
    render_entrypoints(destination_dir=tmp_path, context=CONTEXT)
    first = {p.name: p.read_bytes() for p in tmp_path.iterdir()}
    render_entrypoints(destination_dir=tmp_path, context=CONTEXT)
    second = {p.name: p.read_bytes() for p in tmp_path.iterdir()}
    assert first == second


def test_non_template_files_are_copied(tmp_path: Path) -> None:
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "README").write_text("{{ not rendered }}\n", encoding="utf-8")
    (templates / "run.sh.j2").write_text("echo {{ program_name }}\n", encoding="utf-8")

    out = tmp_path / "out"
    result = render_entrypoints(destination_dir=out, context=CONTEXT, template_dir=templates)

    assert result.rendered_files == 1
    assert result.copied_files == 1
    assert (out / "README").read_text(encoding="utf-8") == "{{ not rendered }}\n"
    assert (out / "run.sh").read_text(encoding="utf-8") == "echo snos\n"


def test_missing_variable_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(RenderError, match="snos.sh.j2|hash_program.py.j2"):
        render_entrypoints(destination_dir=tmp_path, context={})


def test_missing_template_dir(tmp_path: Path) -> None:
    with pytest.raises(RenderError, match="not found"):
        render_entrypoints(destination_dir=tmp_path / "out", context=CONTEXT, template_dir=tmp_path / "none")


def test_nested_templates_keep_relative_layout(tmp_path: Path) -> None:
    templates = tmp_path / "templates"
    (templates / "lib").mkdir(parents=True)
    (templates / "lib" / "common.sh.j2").write_text("# {{ program_name }}\n", encoding="utf-8")
    (templates / "main.sh.j2").write_text(". ./lib/common.sh\n", encoding="utf-8")

    out = tmp_path / "out"
    result = render_entrypoints(destination_dir=out, context=CONTEXT, template_dir=templates)

    assert result.rendered_files == 2
    assert (out / "lib" / "common.sh").read_text(encoding="utf-8") == "# snos\n"
    assert (out / "main.sh").is_file()
