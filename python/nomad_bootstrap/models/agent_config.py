"""
nomad_bootstrap/models/agent_config.py

Defines the typed Nomad agent configuration document. Optional sections are
None until the synthesizer decides they apply; serialization drops them.
Field declaration order is the order keys appear in the rendered JSON.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

BIND_ALL_ADDRESS = "0.0.0.0"
LOCAL_CONSUL_ADDRESS = "127.0.0.1:8500"


class AdvertiseSection(BaseModel):
    """Addresses other agents use to reach this one."""

    model_config = ConfigDict(extra="forbid")

    http: str
    rpc: str
    serf: str


class ServerSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    bootstrap_expect: int = Field(ge=1)


class ClientSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True


class VaultSection(BaseModel):
    """Vault integration. The address is passed through as given."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    address: str = Field(min_length=1)


class ConsulSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    address: str = LOCAL_CONSUL_ADDRESS


class AgentConfigDocument(BaseModel):
    """
    The complete Nomad agent configuration written to <config_dir>/default.json.

    Attributes:
        name: Agent name, the EC2 instance id.
        region: Nomad region, the EC2 region.
        datacenter: Nomad datacenter.
        bind_addr: Always 0.0.0.0.
        retry_join: go-discover strings for tag-based peer discovery.
        server: Present iff the node is a server.
        client: Present iff the node is a client.
        advertise: Always present, every endpoint set to the private ip.
        vault: Present iff a Vault address was supplied.
        consul: Always present, pointing at the local Consul agent.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    region: str = Field(min_length=1)
    datacenter: str = Field(min_length=1)
    bind_addr: str = BIND_ALL_ADDRESS
    retry_join: Optional[List[str]] = None
    server: Optional[ServerSection] = None
    client: Optional[ClientSection] = None
    advertise: Optional[AdvertiseSection] = None
    vault: Optional[VaultSection] = None
    consul: Optional[ConsulSection] = None
