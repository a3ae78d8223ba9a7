"""
cli.py

Responsibility: CLI entrypoint for snosgen.

High-level flow:
1) Load config (defaults -> YAML file -> CLI flags; `SUDO` from the environment)
2) Resolve the repository layout from the invoking script, not the CWD
3) (Optional) Verify the pinned images exist locally or on Docker Hub
4) Run the pipeline: prepare -> compile -> format -> hash

The exit status of the first failing container is passed through unchanged.

This module should orchestrate behavior but keep concerns isolated:
- Configuration: `config.py`
- docker CLI: `docker.py`
- Entrypoint rendering: `renderer.py`
- Docker Hub API: `registry.py`
- Stage sequencing: `pipeline.py`
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import structlog

from snosgen.config import BuildConfig, ConfigError, load_config, resolve_layout
from snosgen.docker import DockerClient, DockerError, InvocationFailed
from snosgen.observability import LOG_LEVELS, configure_logging
from snosgen.pipeline import StageFailed, run_pipeline
from snosgen.registry import DockerHubClient, RegistryError, verify_images
from snosgen.renderer import RenderError

logger = structlog.get_logger(__name__)

EXIT_FAILURE = 1


def _build_config(args: argparse.Namespace) -> BuildConfig:
    config = load_config(args.config, environ=os.environ)
    return config.with_overrides(
        cairo_version=args.cairo_version,
        compiler_version=args.compiler_version,
        hasher_version=args.hasher_version,
    )


def generate_cmd(args: argparse.Namespace, *, anchor: str | Path | None = None) -> int:
    config = _build_config(args)
    layout = resolve_layout(anchor, repo_root=args.repo_root, output_dir_name=config.output_dir_name)
    client = DockerClient(elevation=config.elevation)

    if args.verify_images:
        verify_images(
            [config.compiler, config.formatter, config.hasher_image],
            docker=client,
            hub=DockerHubClient(),
        )

    result = run_pipeline(config, layout, client=client, dry_run=bool(args.dry_run))
    if not args.dry_run:
        logger.info("build_completed", artifact=str(result.artifact))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="snosgen",
        description="Deterministically build the snos program artifact and print its hash using Docker",
        epilog="Set SUDO=sudo in environments where docker needs elevated privileges.",
    )
    p.add_argument("--config", default=None, help="YAML config file with version pins and paths")
    p.add_argument("--repo-root", default=None, help="Repository root (default: parent of the script directory)")
    p.add_argument("--cairo-version", default=None, help="CAIRO_VERSION passed to the compiler entrypoint")
    p.add_argument("--compiler-version", default=None, help="Tag of the cairo-lang compiler image")
    p.add_argument("--hasher-version", default=None, help="Tag of the image used for hashing (default: compiler tag)")
    p.add_argument("--dry-run", action="store_true", help="Print the docker commands instead of running them")
    p.add_argument(
        "--verify-images",
        action="store_true",
        help="Check that every image exists locally or on Docker Hub before running",
    )
    p.add_argument("--log-level", default="INFO", choices=LOG_LEVELS, type=str.upper, help="Log level (default: INFO)")
    p.add_argument(
        "--log-format",
        default="console",
        choices=("console", "json"),
        help="Log output format on stderr (default: console)",
    )
    return p


def main(argv: list[str] | None = None, *, anchor: str | Path | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.dry_run and args.verify_images:
        parser.error("--verify-images cannot be combined with --dry-run")
    configure_logging(log_level=args.log_level, json_format=args.log_format == "json")

    try:
        return generate_cmd(args, anchor=anchor)
    except StageFailed as e:
        print(f"snosgen: {e}", file=sys.stderr)
        return e.exit_code
    except InvocationFailed as e:
        print(f"snosgen: {e}", file=sys.stderr)
        return e.exit_code
    except (ConfigError, RenderError, RegistryError, DockerError) as e:
        print(f"snosgen: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
