"""
nomad_bootstrap/models/metadata.py

Settings for reaching the EC2 instance metadata service: base URL and
per-request timeout.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

EC2_METADATA_BASE_URL = "http://169.254.169.254/latest"


class MetadataSettings(BaseModel):
    base_url: str = Field(default=EC2_METADATA_BASE_URL)
    timeout_seconds: float = Field(default=5.0, gt=0)
