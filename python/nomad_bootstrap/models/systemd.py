"""
nomad_bootstrap/models/systemd.py

Defines Pydantic models for the systemd side of a run:
 - SystemdPaths: where the agent binary, config, and data live.
 - ServiceUnitSpec: everything needed to render nomad.service.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_INSTALL_ROOT = Path("/opt/nomad")
SYSTEMD_UNIT_PATH = Path("/etc/systemd/system/nomad.service")
AGENT_CONFIG_FILE_NAME = "default.json"


class SystemdPaths(BaseModel):
    """Directory layout the unit points at.

    Attributes:
        bin_dir: Directory holding the nomad binary.
        config_dir: Directory passed to `nomad agent -config`.
        data_dir: Directory passed to `nomad agent -data-dir`.
    """

    model_config = ConfigDict(frozen=True)

    bin_dir: Path = DEFAULT_INSTALL_ROOT / "bin"
    config_dir: Path = DEFAULT_INSTALL_ROOT / "config"
    data_dir: Path = DEFAULT_INSTALL_ROOT / "data"

    @property
    def config_path(self) -> Path:
        return self.config_dir / AGENT_CONFIG_FILE_NAME

    @property
    def binary_path(self) -> Path:
        return self.bin_dir / "nomad"


class ServiceUnitSpec(BaseModel):
    """
    A fully resolved systemd service definition.

    Attributes:
        description: Unit Description=.
        working_preconditions: Files that must be non-empty before start
            (rendered as ConditionFileNotEmpty=).
        user: User= and Group= of the service.
        exec_start_command: ExecStart= command line.
        restart_policy: Restart= value.
        timeout: TimeoutSec= value.
        file_descriptor_limit: LimitNOFILE= value.
        environment: KEY=VALUE pairs, order preserved, duplicates kept.
        stdout_target: StandardOutput= value, omitted when None.
        stderr_target: StandardError= value, omitted when None.
    """

    description: str = "HashiCorp Nomad"
    documentation: str = "https://www.nomadproject.io/"
    working_preconditions: List[Path]
    user: str = Field(min_length=1)
    exec_start_command: str
    exec_reload_command: str = "/bin/kill --signal HUP $MAINPID"
    restart_policy: str = "on-failure"
    restart_sec: int = 2
    timeout: str = "300s"
    file_descriptor_limit: int = 65536
    environment: List[str] = Field(default_factory=list)
    stdout_target: Optional[str] = None
    stderr_target: Optional[str] = None

    @field_validator(
        "description",
        "documentation",
        "user",
        "exec_start_command",
        "exec_reload_command",
        "restart_policy",
        "timeout",
        "stdout_target",
        "stderr_target",
    )
    @classmethod
    def validate_single_line(cls, value: Optional[str]) -> Optional[str]:
        """A line break would start a new directive in the rendered unit."""
        if value is not None and ("\n" in value or "\r" in value):
            raise ValueError(f"Unit value {value!r} must not contain line breaks.")
        return value

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, value: List[str]) -> List[str]:
        """Each entry must look like KEY=VALUE with a non-empty key, on one line."""
        for entry in value:
            key, sep, _ = entry.partition("=")
            if not sep or not key.strip():
                raise ValueError(f"Environment entry '{entry}' is not KEY=VALUE.")
            if "\n" in entry or "\r" in entry:
                raise ValueError(
                    f"Environment entry {entry!r} must not contain line breaks."
                )
        return value
