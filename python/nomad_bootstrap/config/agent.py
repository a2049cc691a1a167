"""
nomad_bootstrap/config/agent.py

Builds the Nomad agent configuration for this node.

synthesize() is pure: it turns a ClusterTopology and a NodeIdentity into an
AgentConfigDocument, adding each optional section only when its condition
holds. render_agent_config() serializes the document and checks that the
text parses back into the same model; write_agent_config() is the only
function here that touches the disk.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from nomad_bootstrap.errors import ConfigValidationError, InputError
from nomad_bootstrap.models.agent_config import (
    AdvertiseSection,
    AgentConfigDocument,
    ClientSection,
    ConsulSection,
    ServerSection,
    VaultSection,
)
from nomad_bootstrap.models.node import ClusterTopology, NodeIdentity
from nomad_bootstrap.models.systemd import AGENT_CONFIG_FILE_NAME
from nomad_bootstrap.models.validator import validate_json
from nomad_bootstrap.utils.filesystem import write_file

logger = logging.getLogger(__name__)


def retry_join_entries(topology: ClusterTopology, region: str) -> Optional[List[str]]:
    """
    go-discover strings for AWS tag-based discovery, or None when the tag
    pair is incomplete. An incomplete pair logs a warning but is not an error.
    """
    if topology.has_retry_join:
        return [
            f"provider=aws region={region} "
            f"tag_key={topology.tag_key} tag_value={topology.tag_value}"
        ]

    if topology.tag_key is None and topology.tag_value is None:
        logger.warning(
            "No cluster tag key/value given; retry_join is disabled and this "
            "node will not discover peers automatically."
        )
    else:
        logger.warning(
            "Only one of cluster tag key (%s) and tag value (%s) is set; "
            "retry_join is disabled and this node will not discover peers "
            "automatically.",
            topology.tag_key,
            topology.tag_value,
        )
    return None


def synthesize(
    topology: ClusterTopology,
    identity: NodeIdentity,
    vault_address: Optional[str] = None,
) -> AgentConfigDocument:
    """
    Build the agent configuration document for one node.

    Args:
        topology: Roles and clustering parameters.
        identity: Facts about the host from the metadata service.
        vault_address: Vault URL; the vault section is emitted only when non-empty.

    Returns:
        AgentConfigDocument: The populated document.

    Raises:
        InputError: If the topology breaks an invariant.
    """
    try:
        topology = ClusterTopology.model_validate(topology.model_dump())
    except ValidationError as exc:
        raise InputError(f"Invalid cluster topology: {exc}") from exc

    server = None
    if topology.is_server:
        assert topology.expected_server_count is not None
        server = ServerSection(bootstrap_expect=topology.expected_server_count)

    vault = None
    if vault_address and vault_address.strip():
        vault = VaultSection(address=vault_address.strip())

    ip = identity.private_ip
    return AgentConfigDocument(
        name=identity.instance_id,
        region=identity.region,
        datacenter=topology.datacenter or identity.availability_zone,
        retry_join=retry_join_entries(topology, identity.region),
        server=server,
        client=ClientSection() if topology.is_client else None,
        advertise=AdvertiseSection(http=ip, rpc=ip, serf=ip),
        vault=vault,
        consul=ConsulSection(),
    )


def render_agent_config(document: AgentConfigDocument) -> str:
    """
    Serialize `document` to JSON and verify it round-trips.

    Raises:
        ConfigValidationError: If the rendered text is not a valid document.
    """
    text = document.model_dump_json(indent=2, exclude_none=True) + "\n"
    try:
        parsed = validate_json(text, AgentConfigDocument)
    except ValueError as exc:
        raise ConfigValidationError(f"Rendered agent config is invalid: {exc}") from exc
    if parsed != document:
        raise ConfigValidationError(
            "Rendered agent config does not match the synthesized document."
        )
    return text


async def write_agent_config(
    document: AgentConfigDocument,
    config_dir: Path,
    user: Optional[str] = None,
) -> Path:
    """
    Render `document` and write it to <config_dir>/default.json, owned by `user`.

    Returns:
        Path: The written config path.
    """
    text = render_agent_config(document)
    config_path = config_dir / AGENT_CONFIG_FILE_NAME
    logger.info("Writing Nomad agent config to %s", config_path)
    await write_file(config_path, text, user=user, mode=0o644)
    return config_path
