"""
nomad_bootstrap/services/systemd.py

Generates, renders, and installs the nomad.service systemd unit, then asks
systemd to pick it up. The unit file is always rewritten in full.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from nomad_bootstrap.models.systemd import (
    SYSTEMD_UNIT_PATH,
    ServiceUnitSpec,
    SystemdPaths,
)
from nomad_bootstrap.utils.async_command_runner import run_command
from nomad_bootstrap.utils.filesystem import write_file

logger = logging.getLogger(__name__)

SERVICE_NAME = "nomad.service"


def generate_service_unit(
    paths: SystemdPaths,
    user: str,
    environment: Sequence[str] = (),
    stdout_target: Optional[str] = None,
    stderr_target: Optional[str] = None,
) -> ServiceUnitSpec:
    """
    Build the ServiceUnitSpec for a Nomad agent.

    Args:
        paths: Where the binary, config, and data directories are.
        user: User (and group) the agent runs as.
        environment: KEY=VALUE entries, kept in order, duplicates included.
        stdout_target: StandardOutput= value; omitted if None.
        stderr_target: StandardError= value; omitted if None.
    """
    exec_start = (
        f"{paths.binary_path} agent -config {paths.config_dir} "
        f"-data-dir {paths.data_dir}"
    )
    return ServiceUnitSpec(
        working_preconditions=[paths.config_path],
        user=user,
        exec_start_command=exec_start,
        environment=list(environment),
        stdout_target=stdout_target,
        stderr_target=stderr_target,
    )


def quote_environment_entry(entry: str) -> str:
    """Double-quote one Environment= assignment, escaping what systemd would
    otherwise interpret: backslashes, quotes and % specifiers."""
    escaped = entry.replace("\\", "\\\\").replace('"', '\\"').replace("%", "%%")
    return f'"{escaped}"'


def render_service_unit(spec: ServiceUnitSpec) -> str:
    """Render `spec` using systemd unit-file syntax."""
    unit: List[str] = [
        "[Unit]",
        f'Description="{spec.description}"',
        f"Documentation={spec.documentation}",
        "Requires=network-online.target",
        "After=network-online.target",
    ]
    unit.extend(f"ConditionFileNotEmpty={p}" for p in spec.working_preconditions)

    service: List[str] = [
        "[Service]",
        f"User={spec.user}",
        f"Group={spec.user}",
        f"ExecStart={spec.exec_start_command}",
        f"ExecReload={spec.exec_reload_command}",
        "KillMode=process",
        "KillSignal=SIGINT",
        f"Restart={spec.restart_policy}",
        f"RestartSec={spec.restart_sec}",
        f"TimeoutSec={spec.timeout}",
        f"LimitNOFILE={spec.file_descriptor_limit}",
    ]
    service.extend(
        f"Environment={quote_environment_entry(entry)}" for entry in spec.environment
    )
    if spec.stdout_target:
        service.append(f"StandardOutput={spec.stdout_target}")
    if spec.stderr_target:
        service.append(f"StandardError={spec.stderr_target}")

    install = ["[Install]", "WantedBy=multi-user.target"]

    return "\n\n".join("\n".join(section) for section in (unit, service, install)) + "\n"


async def write_service_unit(
    spec: ServiceUnitSpec, unit_path: Path = SYSTEMD_UNIT_PATH
) -> Path:
    """Overwrite `unit_path` with the rendered unit."""
    logger.info("Writing systemd unit to %s", unit_path)
    await write_file(unit_path, render_service_unit(spec), mode=0o644)
    return unit_path


async def activate_service(service_name: str = SERVICE_NAME) -> None:
    """Reload systemd, enable the unit, and (re)start it."""
    logger.info("Reloading systemd and restarting %s", service_name)
    await run_command(["systemctl", "daemon-reload"])
    await run_command(["systemctl", "enable", service_name])
    await run_command(["systemctl", "restart", service_name])
