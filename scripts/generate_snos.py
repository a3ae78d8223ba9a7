#!/usr/bin/env python3
"""
Uses Docker to deterministically generate the `snos` program artifact into `programs/`.

In environments that need `sudo` to run `docker` commands, set the `SUDO` variable:

    $ SUDO=sudo ./scripts/generate_snos.py
"""

from __future__ import annotations

from snosgen.cli import main

if __name__ == "__main__":
    raise SystemExit(main(anchor=__file__))
