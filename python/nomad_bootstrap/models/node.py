"""
nomad_bootstrap/models/node.py

Defines Pydantic models describing the node being bootstrapped:
 - NodeIdentity: facts resolved from the EC2 instance metadata service.
 - AgentRole: the roles a Nomad agent can take.
 - ClusterTopology: role selection plus clustering parameters.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.functional_validators import model_validator


class NodeIdentity(BaseModel):
    """Identity of the running EC2 instance.

    Attributes:
        instance_id: EC2 instance id, used as the agent name.
        private_ip: Private IPv4 address, used for every advertise endpoint.
        availability_zone: e.g. "us-east-1a".
        region: e.g. "us-east-1".
    """

    model_config = ConfigDict(frozen=True)

    instance_id: str = Field(min_length=1)
    private_ip: str = Field(min_length=1)
    availability_zone: str = Field(min_length=1)
    region: str = Field(min_length=1)


class AgentRole(str, Enum):
    SERVER = "server"
    CLIENT = "client"


class ClusterTopology(BaseModel):
    """
    How this node joins the cluster.

    Invariants (checked at construction):
      - at least one role is selected
      - a server needs an expected_server_count
      - expected_server_count, whenever given, is at least 1
      - tag_key / tag_value are normalized so an empty string becomes None;
        a half-specified tag pair is kept as given and only disables
        retry-join later (see has_retry_join)

    Attributes:
        role: Non-empty set of AgentRole values.
        expected_server_count: Servers to wait for before bootstrapping.
        tag_key: EC2 tag key used to discover peers.
        tag_value: EC2 tag value used to discover peers.
        datacenter: Nomad datacenter. None means "use the availability zone".
    """

    model_config = ConfigDict(frozen=True)

    role: Set[AgentRole]
    expected_server_count: Optional[int] = Field(default=None, ge=1)
    tag_key: Optional[str] = None
    tag_value: Optional[str] = None
    datacenter: Optional[str] = None

    @field_validator("tag_key", "tag_value", "datacenter")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only strings as not provided."""
        if value is None or not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_roles(self) -> ClusterTopology:
        """Reject empty role sets and servers without an expected count."""
        if not self.role:
            raise ValueError("At least one of 'server' or 'client' must be set.")
        if AgentRole.SERVER in self.role and self.expected_server_count is None:
            raise ValueError("The server role requires expected_server_count.")
        return self

    @property
    def is_server(self) -> bool:
        return AgentRole.SERVER in self.role

    @property
    def is_client(self) -> bool:
        return AgentRole.CLIENT in self.role

    @property
    def has_retry_join(self) -> bool:
        """True only when both halves of the tag pair are present."""
        return self.tag_key is not None and self.tag_value is not None
