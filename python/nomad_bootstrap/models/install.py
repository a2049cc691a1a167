"""
nomad_bootstrap/models/install.py

Defines the parameters of an install run:
 - PackageManager: the two supported system package managers.
 - InstallationPlan: version-or-url, install root, and run-as user.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.functional_validators import model_validator

from nomad_bootstrap.models.systemd import DEFAULT_INSTALL_ROOT

DOWNLOAD_URL_TEMPLATE = (
    "https://releases.hashicorp.com/nomad/{version}/nomad_{version}_linux_amd64.zip"
)
INSTALL_DEPENDENCIES: List[str] = ["curl", "unzip", "jq"]
INSTALL_SUBDIRECTORIES: List[str] = ["bin", "config", "data", "tls/ca"]


class PackageManager(str, Enum):
    APT = "apt-get"
    YUM = "yum"


class InstallationPlan(BaseModel):
    """
    What to install and where.

    Exactly one of version / download_url drives the download; if both are
    given the explicit URL wins. Neither is a validation error.

    Attributes:
        version: Nomad release, e.g. "1.2.2".
        download_url: Explicit zip URL overriding the release URL.
        install_root: Root of the bin/config/data/tls layout.
        user: OS user that owns the layout and runs the agent.
    """

    model_config = ConfigDict(frozen=True)

    version: Optional[str] = None
    download_url: Optional[str] = None
    install_root: Path = DEFAULT_INSTALL_ROOT
    user: str = Field(default="nomad", min_length=1)

    @field_validator("version", "download_url")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def check_source(self) -> InstallationPlan:
        """Require a version or a download URL."""
        if self.version is None and self.download_url is None:
            raise ValueError("Either version or download_url must be provided.")
        return self

    def resolve_download_url(self) -> str:
        """Return the explicit URL, or the release URL derived from version."""
        if self.download_url is not None:
            return self.download_url
        assert self.version is not None, "version unexpectedly None"
        return DOWNLOAD_URL_TEMPLATE.format(version=self.version)

    def subdirectories(self) -> List[Path]:
        return [self.install_root / sub for sub in INSTALL_SUBDIRECTORIES]
