"""
config.py

Responsibility: Resolve the repository layout and load the build configuration into
deterministic, typed models.

Configuration is layered:
- Built-in defaults (the pinned toolchain versions)
- An optional YAML file (a top-level mapping)
- CLI overrides, applied by the caller via `BuildConfig.with_overrides`

The elevation prefix (`SUDO`) is read from the environment exactly once, here, and
carried on the config so every container invocation sees the same value.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_CAIRO_VERSION = "0.13.3"
DEFAULT_COMPILER_VERSION = "0.13.3"

COMPILER_IMAGE = "starknet/cairo-lang"
FORMATTER_IMAGE = "tmknom/prettier:3.2.5"

DEFAULT_PROGRAM_NAME = "snos"
DEFAULT_OUTPUT_DIR = "programs"
DEFAULT_CAIRO_SOURCE = "starkware/starknet/core/os/os.cairo"

ELEVATION_ENV_VAR = "SUDO"

# Directory every checkout has at its root.
CHECKOUT_MARKER = "scripts"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ToolImage:
    """A container image pinned to a tag, e.g. `starknet/cairo-lang:0.13.3`."""

    name: str
    tag: str

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.tag}"

    @classmethod
    def parse(cls, reference: str) -> ToolImage:
        """
        Parse `name:tag`. The tag separator is the last colon after the last slash, so
        registry hosts with ports (`registry:5000/img:tag`) are handled.
        """
        ref = reference.strip()
        slash = ref.rfind("/")
        colon = ref.rfind(":")
        if colon <= slash or colon == len(ref) - 1:
            raise ConfigError(f"Image reference must be pinned as name:tag, got {reference!r}")
        name = ref[:colon]
        if not name:
            raise ConfigError(f"Image reference has an empty name: {reference!r}")
        return cls(name=name, tag=ref[colon + 1 :])

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class Layout:
    """Absolute paths the pipeline works with."""

    script_dir: Path
    repo_root: Path
    output_dir_name: str = DEFAULT_OUTPUT_DIR

    @property
    def output_dir(self) -> Path:
        return self.repo_root / self.output_dir_name

    @property
    def entrypoints_dir(self) -> Path:
        return self.repo_root / "build" / "entrypoints"


def resolve_layout(
    anchor: str | Path | None = None,
    *,
    repo_root: str | Path | None = None,
    output_dir_name: str = DEFAULT_OUTPUT_DIR,
) -> Layout:
    """
    Resolve the layout from the invoking script's location, never from the CWD.

    `anchor` is the path of the invoking script; its directory is the script directory
    and that directory's parent is the repository root. Without an anchor the `snosgen`
    package directory plays the script directory. An explicit `repo_root` wins.
    Without either, the derived root must contain a `scripts/` directory.
    """
    anchor_path = Path(anchor) if anchor is not None else Path(__file__)
    script_dir = anchor_path.resolve().parent
    if repo_root is not None:
        return Layout(script_dir=script_dir, repo_root=Path(repo_root).resolve(), output_dir_name=output_dir_name)

    root = script_dir.parent
    # An installed (non-editable) package sits in site-packages, not in a checkout.
    if anchor is None and not (root / CHECKOUT_MARKER).is_dir():
        raise ConfigError(f"Cannot locate the repository checkout from {script_dir}; pass --repo-root.")
    return Layout(script_dir=script_dir, repo_root=root, output_dir_name=output_dir_name)


@dataclass(frozen=True)
class BuildConfig:
    """Everything one run needs, fixed at startup."""

    cairo_version: str = DEFAULT_CAIRO_VERSION
    compiler: ToolImage = ToolImage(COMPILER_IMAGE, DEFAULT_COMPILER_VERSION)
    formatter: ToolImage = ToolImage.parse(FORMATTER_IMAGE)
    hasher: ToolImage | None = None
    program_name: str = DEFAULT_PROGRAM_NAME
    output_dir_name: str = DEFAULT_OUTPUT_DIR
    cairo_source: str = DEFAULT_CAIRO_SOURCE
    use_poseidon: bool = False
    elevation: tuple[str, ...] = ()

    @property
    def hasher_image(self) -> ToolImage:
        # Hashing runs inside the compiler image unless explicitly decoupled.
        return self.hasher or self.compiler

    @property
    def artifact_name(self) -> str:
        return f"{self.program_name}.json"

    def with_overrides(
        self,
        *,
        cairo_version: str | None = None,
        compiler_version: str | None = None,
        hasher_version: str | None = None,
    ) -> BuildConfig:
        cfg = self
        if cairo_version:
            cfg = replace(cfg, cairo_version=cairo_version)
        if compiler_version:
            cfg = replace(cfg, compiler=ToolImage(cfg.compiler.name, compiler_version))
        if hasher_version:
            cfg = replace(cfg, hasher=ToolImage(cfg.hasher_image.name, hasher_version))
        return cfg


_KNOWN_KEYS = frozenset(
    {
        "cairo_version",
        "compiler_version",
        "compiler_image",
        "hasher_version",
        "formatter_image",
        "program_name",
        "output_dir",
        "cairo_source",
        "use_poseidon",
    }
)


def parse_elevation(value: str | None) -> tuple[str, ...]:
    """Split `SUDO` shell-style (`SUDO="sudo -E"` gives two words)."""
    if not value:
        return ()
    try:
        return tuple(shlex.split(value))
    except ValueError as e:
        raise ConfigError(f"Cannot parse ${ELEVATION_ENV_VAR}={value!r}: {e}") from e


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file does not exist: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError("Config file must be a mapping/object at the top level.")
    unknown = sorted(str(k) for k in data if k not in _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    return data


def _str_value(data: Mapping[str, Any], key: str, default: str | None) -> str:
    raw = data.get(key)
    if raw is None:
        if default is None:
            raise ConfigError(f"`{key}` must not be empty.")
        return default
    if isinstance(raw, float):
        # YAML reads 0.10 as the float 0.1; a version tag must keep its digits.
        raise ConfigError(f"`{key}` was read as the number {raw!r}; quote the version in the config file.")
    if not isinstance(raw, (str, int)) or isinstance(raw, bool):
        raise ConfigError(f"`{key}` must be a string.")
    value = str(raw).strip()
    if not value:
        raise ConfigError(f"`{key}` must not be empty.")
    return value


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> BuildConfig:
    """
    Build a `BuildConfig` from defaults, an optional YAML file and the environment.

    Recognised YAML keys:
    - cairo_version: str
    - compiler_version: str (tag of the compiler image)
    - compiler_image: str (image name, without tag)
    - hasher_version: str (decouples the hashing step from the compiler tag)
    - formatter_image: str (name:tag)
    - program_name: str
    - output_dir: str (relative to the repository root)
    - cairo_source: str
    - use_poseidon: bool
    """
    data: dict[str, Any] = _read_yaml(Path(config_path)) if config_path is not None else {}
    env = environ if environ is not None else {}

    compiler = ToolImage(
        name=_str_value(data, "compiler_image", COMPILER_IMAGE),
        tag=_str_value(data, "compiler_version", DEFAULT_COMPILER_VERSION),
    )
    hasher = None
    if "hasher_version" in data:
        hasher = ToolImage(compiler.name, _str_value(data, "hasher_version", None))

    output_dir = _str_value(data, "output_dir", DEFAULT_OUTPUT_DIR)
    if Path(output_dir).is_absolute() or ".." in Path(output_dir).parts:
        raise ConfigError("`output_dir` must be a path inside the repository root.")

    use_poseidon = data.get("use_poseidon", False)
    if not isinstance(use_poseidon, bool):
        raise ConfigError("`use_poseidon` must be a boolean.")

    return BuildConfig(
        cairo_version=_str_value(data, "cairo_version", DEFAULT_CAIRO_VERSION),
        compiler=compiler,
        formatter=ToolImage.parse(_str_value(data, "formatter_image", FORMATTER_IMAGE)),
        hasher=hasher,
        program_name=_str_value(data, "program_name", DEFAULT_PROGRAM_NAME),
        output_dir_name=output_dir,
        cairo_source=_str_value(data, "cairo_source", DEFAULT_CAIRO_SOURCE),
        use_poseidon=use_poseidon,
        elevation=parse_elevation(env.get(ELEVATION_ENV_VAR)),
    )
