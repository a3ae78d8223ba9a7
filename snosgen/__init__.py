"""
snosgen package

Deterministic generator for the `snos` program artifact, built with Docker.

Key responsibilities are split across modules:
- `config.py`: layout resolution and the layered build configuration
- `docker.py`: isolated docker CLI interaction (command lines, exit codes)
- `renderer.py`: deterministic rendering of the container entrypoint scripts
- `registry.py`: Docker Hub API lookups and the image preflight
- `pipeline.py`: fail-fast sequencing (prepare -> compile -> format -> hash)
- `cli.py`: CLI entrypoint
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
