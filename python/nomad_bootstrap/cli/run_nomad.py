#!/usr/bin/env python3
"""
nomad_bootstrap/cli/run_nomad.py

Configures and starts the Nomad agent on an EC2 instance:

    run-nomad --server --num-servers 3 \
      --cluster-tag-key nomad-servers --cluster-tag-value auto-join

Writes <config-dir>/default.json from instance metadata (unless
--skip-nomad-config), writes /etc/systemd/system/nomad.service, and restarts
the service. Must run as root.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional, Set

from pydantic import ValidationError

from nomad_bootstrap.deployment.run import run
from nomad_bootstrap.errors import BootstrapError
from nomad_bootstrap.models.node import AgentRole, ClusterTopology
from nomad_bootstrap.models.run import RunSettings
from nomad_bootstrap.models.systemd import DEFAULT_INSTALL_ROOT, SystemdPaths
from nomad_bootstrap.utils.log_setup import LOG_LEVELS, configure_logging

logger = logging.getLogger("run-nomad")


def _environment_entry(value: str) -> str:
    key, sep, _ = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"'{value}' is not in KEY=VALUE form")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run-nomad",
        description=(
            "Configure Nomad to run on this EC2 instance using systemd, "
            "then start it."
        ),
    )
    parser.add_argument(
        "--server", action="store_true", help="Run this node as a Nomad server."
    )
    parser.add_argument(
        "--client", action="store_true", help="Run this node as a Nomad client."
    )
    parser.add_argument(
        "--num-servers",
        type=int,
        default=None,
        help="Expected number of servers in the cluster. Required with --server.",
    )
    parser.add_argument(
        "--cluster-tag-key",
        default=None,
        help="EC2 tag key used by retry_join to find other cluster members.",
    )
    parser.add_argument(
        "--cluster-tag-value",
        default=None,
        help="EC2 tag value used by retry_join to find other cluster members.",
    )
    parser.add_argument(
        "--datacenter",
        default=None,
        help="Nomad datacenter. Defaults to the instance's availability zone.",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=DEFAULT_INSTALL_ROOT / "config",
        help="Directory holding the Nomad config files.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DEFAULT_INSTALL_ROOT / "data",
        help="Directory where Nomad stores its data.",
    )
    parser.add_argument(
        "--bin-dir",
        type=Path,
        default=DEFAULT_INSTALL_ROOT / "bin",
        help="Directory holding the nomad binary.",
    )
    parser.add_argument(
        "--systemd-stdout",
        default=None,
        help="StandardOutput= for the unit, e.g. 'journal' or 'file:/var/log/nomad.log'.",
    )
    parser.add_argument(
        "--systemd-stderr",
        default=None,
        help="StandardError= for the unit.",
    )
    parser.add_argument(
        "--user",
        default=None,
        help="User to run Nomad as. Defaults to the owner of --config-dir.",
    )
    parser.add_argument(
        "--use-sudo",
        action="store_true",
        help="Run Nomad as root. Clients usually need this to drive container runtimes.",
    )
    parser.add_argument(
        "--environment",
        action="append",
        type=_environment_entry,
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable for the Nomad process. May be repeated.",
    )
    parser.add_argument(
        "--vault-address",
        default=None,
        help="Vault address written to the agent's vault section.",
    )
    parser.add_argument(
        "--skip-nomad-config",
        action="store_true",
        help="Do not generate a Nomad config file; only set up and start systemd.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level.",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> RunSettings:
    """
    Raises:
        ValidationError: If the flags do not form a valid topology/run.
    """
    roles: Set[AgentRole] = set()
    if args.server:
        roles.add(AgentRole.SERVER)
    if args.client:
        roles.add(AgentRole.CLIENT)

    topology = ClusterTopology(
        role=roles,
        expected_server_count=args.num_servers,
        tag_key=args.cluster_tag_key,
        tag_value=args.cluster_tag_value,
        datacenter=args.datacenter,
    )
    return RunSettings(
        topology=topology,
        paths=SystemdPaths(
            bin_dir=args.bin_dir,
            config_dir=args.config_dir,
            data_dir=args.data_dir,
        ),
        user=args.user,
        use_sudo=args.use_sudo,
        environment=args.environment,
        vault_address=args.vault_address,
        skip_config=args.skip_nomad_config,
        stdout_target=args.systemd_stdout,
        stderr_target=args.systemd_stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = settings_from_args(args)
    except ValidationError as exc:
        parser.print_usage(sys.stderr)
        logger.error("Invalid arguments: %s", exc)
        return 2

    try:
        asyncio.run(run(settings))
    except BootstrapError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except OSError as exc:
        logger.error("File system error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
