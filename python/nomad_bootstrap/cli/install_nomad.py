#!/usr/bin/env python3
"""
nomad_bootstrap/cli/install_nomad.py

Installs Nomad on an EC2 instance:

    install-nomad --version 1.2.2
    install-nomad --download-url https://example.com/nomad.zip --path /opt/nomad

Creates the run-as user and /opt/nomad layout, downloads and installs the
binary, and drops the run-nomad launcher next to it. Must run as root.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from nomad_bootstrap.deployment.install import install
from nomad_bootstrap.errors import BootstrapError
from nomad_bootstrap.models.install import InstallationPlan
from nomad_bootstrap.models.systemd import DEFAULT_INSTALL_ROOT
from nomad_bootstrap.utils.log_setup import LOG_LEVELS, configure_logging

logger = logging.getLogger("install-nomad")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="install-nomad",
        description="Install Nomad on this machine.",
    )
    parser.add_argument(
        "--version",
        default=None,
        help="Nomad release to install, e.g. 1.2.2. Required unless --download-url is set.",
    )
    parser.add_argument(
        "--download-url",
        default=None,
        help="URL of a Nomad zip to install instead of a release.",
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=DEFAULT_INSTALL_ROOT,
        help="Install root for bin/config/data/tls.",
    )
    parser.add_argument(
        "--user", default="nomad", help="User that owns the install and runs Nomad."
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        plan = InstallationPlan(
            version=args.version,
            download_url=args.download_url,
            install_root=args.path,
            user=args.user,
        )
    except ValidationError as exc:
        parser.print_usage(sys.stderr)
        logger.error("Invalid arguments: %s", exc)
        return 2

    logger.info("Starting Nomad install")
    try:
        asyncio.run(install(plan))
    except BootstrapError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except OSError as exc:
        logger.error("File system error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
