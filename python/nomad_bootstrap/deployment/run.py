"""
nomad_bootstrap/deployment/run.py

The run-time pipeline for one node, strictly in order:
  1) Check systemctl is available.
  2) Pick the run-as user.
  3) Unless skipped: resolve the node identity, synthesize the agent config,
     write it owned by the run-as user.
  4) Write nomad.service and (re)start it through systemd.

Any failure aborts the run; nothing is retried here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from nomad_bootstrap.config.agent import synthesize, write_agent_config
from nomad_bootstrap.errors import MissingDependencyError
from nomad_bootstrap.metadata.ec2 import AsyncMetadataClient
from nomad_bootstrap.models.metadata import MetadataSettings
from nomad_bootstrap.models.run import RunSettings
from nomad_bootstrap.models.systemd import SYSTEMD_UNIT_PATH
from nomad_bootstrap.services.systemd import (
    activate_service,
    generate_service_unit,
    write_service_unit,
)
from nomad_bootstrap.utils.async_command_runner import command_exists
from nomad_bootstrap.utils.filesystem import get_owner_of_path

logger = logging.getLogger(__name__)

MetadataClientFactory = Callable[[MetadataSettings], AsyncMetadataClient]


def resolve_run_user(settings: RunSettings) -> str:
    """root with --use-sudo, else the explicit user, else the config dir owner."""
    if settings.use_sudo:
        return "root"
    if settings.user:
        return settings.user
    owner = get_owner_of_path(settings.paths.config_dir)
    logger.info("No user given, using owner of %s: %s", settings.paths.config_dir, owner)
    return owner


async def generate_agent_config(
    settings: RunSettings,
    user: str,
    metadata_client_factory: MetadataClientFactory = AsyncMetadataClient,
) -> Path:
    """Resolve the node identity and write the agent config for it."""
    async with metadata_client_factory(settings.metadata) as client:
        identity = await client.resolve_identity()
    document = synthesize(settings.topology, identity, settings.vault_address)
    return await write_agent_config(document, settings.paths.config_dir, user)


async def run(
    settings: RunSettings,
    *,
    unit_path: Path = SYSTEMD_UNIT_PATH,
    metadata_client_factory: MetadataClientFactory = AsyncMetadataClient,
) -> None:
    """
    Configure and start the Nomad agent on this node.

    Args:
        settings: Validated run parameters.
        unit_path: Where nomad.service is written.
        metadata_client_factory: Builds the metadata client from settings.

    Raises:
        MissingDependencyError: If systemctl is missing or metadata is unreachable.
        InputError: If the topology is invalid.
        CommandError: If systemd refuses the unit.
    """
    if not command_exists("systemctl"):
        raise MissingDependencyError(
            "systemctl is not installed. This host must run systemd."
        )

    user = resolve_run_user(settings)

    if settings.skip_config:
        logger.info("Skipping Nomad config generation (--skip-nomad-config)")
    else:
        await generate_agent_config(settings, user, metadata_client_factory)

    spec = generate_service_unit(
        settings.paths,
        user,
        environment=settings.environment,
        stdout_target=settings.stdout_target,
        stderr_target=settings.stderr_target,
    )
    await write_service_unit(spec, unit_path)

    await activate_service()

    logger.info("Nomad agent configured and started as %s", user)
