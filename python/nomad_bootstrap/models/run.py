"""
nomad_bootstrap/models/run.py

Defines RunSettings, the validated parameters of one run-nomad invocation.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.functional_validators import model_validator

from nomad_bootstrap.models.metadata import MetadataSettings
from nomad_bootstrap.models.node import ClusterTopology
from nomad_bootstrap.models.systemd import SystemdPaths


class RunSettings(BaseModel):
    """
    Attributes:
        topology: Roles and clustering parameters.
        paths: bin/config/data directories.
        user: Run-as user. None means "owner of the config dir".
        use_sudo: Run the agent as root; excludes `user`.
        environment: KEY=VALUE pairs for the unit, in order.
        vault_address: Vault URL for the agent's vault section.
        skip_config: Leave the agent config untouched.
        stdout_target: StandardOutput= for the unit.
        stderr_target: StandardError= for the unit.
        metadata: How to reach the instance metadata service.
    """

    topology: ClusterTopology
    paths: SystemdPaths = Field(default_factory=SystemdPaths)
    user: Optional[str] = None
    use_sudo: bool = False
    environment: List[str] = Field(default_factory=list)
    vault_address: Optional[str] = None
    skip_config: bool = False
    stdout_target: Optional[str] = None
    stderr_target: Optional[str] = None
    metadata: MetadataSettings = Field(default_factory=MetadataSettings)

    @field_validator("user", "vault_address", "stdout_target", "stderr_target")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_user_exclusivity(self) -> RunSettings:
        """Ensure user and use_sudo are not both set."""
        if self.use_sudo and self.user:
            raise ValueError("user and use_sudo are mutually exclusive.")
        return self
