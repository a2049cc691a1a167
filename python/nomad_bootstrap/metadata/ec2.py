"""
nomad_bootstrap/metadata/ec2.py

An asynchronous client for the EC2 instance metadata service. It resolves the
four facts a Nomad agent needs about its host (private ip, instance id,
availability zone, region) with one plain GET each. There is no retry here:
if the service does not answer, the run cannot continue.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Type

import aiohttp

from nomad_bootstrap.errors import MetadataUnavailable
from nomad_bootstrap.models.metadata import MetadataSettings
from nomad_bootstrap.models.node import NodeIdentity
from nomad_bootstrap.models.validator import validate_type

logger = logging.getLogger(__name__)

PRIVATE_IP_PATH = "meta-data/local-ipv4"
INSTANCE_ID_PATH = "meta-data/instance-id"
AVAILABILITY_ZONE_PATH = "meta-data/placement/availability-zone"
IDENTITY_DOCUMENT_PATH = "dynamic/instance-identity/document"


class AsyncMetadataClient:
    """Reads instance metadata and dynamic identity data over HTTP."""

    def __init__(self, settings: Optional[MetadataSettings] = None) -> None:
        settings = settings or MetadataSettings()
        self._base_url = settings.base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=settings.timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> AsyncMetadataClient:
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        if self._session:
            await self._session.close()
        self._session = None

    async def ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _get_text(self, path: str) -> str:
        """GET `path` relative to the base URL and return the stripped body.

        Raises:
            MetadataUnavailable: On connection errors, timeouts, non-2xx
                statuses, undecodable bytes, or an empty body.
        """
        session = await self.ensure_session()
        url = f"{self._base_url}/{path}"
        try:
            async with session.get(url) as resp:
                raw = await resp.read()
                if not 200 <= resp.status < 300:
                    raise MetadataUnavailable(path, f"HTTP {resp.status}")
        except aiohttp.ClientError as exc:
            raise MetadataUnavailable(path, str(exc) or type(exc).__name__) from exc
        except asyncio.TimeoutError as exc:
            raise MetadataUnavailable(path, "timed out") from exc

        try:
            body = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MetadataUnavailable(path, "response is not valid UTF-8 text") from exc

        value = body.strip()
        if not value:
            raise MetadataUnavailable(path, "empty response")
        return value

    async def get_private_ip(self) -> str:
        return await self._get_text(PRIVATE_IP_PATH)

    async def get_instance_id(self) -> str:
        return await self._get_text(INSTANCE_ID_PATH)

    async def get_availability_zone(self) -> str:
        return await self._get_text(AVAILABILITY_ZONE_PATH)

    async def get_region(self) -> str:
        """Extract `region` from the signed instance identity document."""
        text = await self._get_text(IDENTITY_DOCUMENT_PATH)
        try:
            document = validate_type(json.loads(text), Dict[str, Any])
        except ValueError as exc:
            raise MetadataUnavailable(IDENTITY_DOCUMENT_PATH, "invalid JSON") from exc

        region = document.get("region")
        if not isinstance(region, str) or not region:
            raise MetadataUnavailable(
                IDENTITY_DOCUMENT_PATH, "document has no 'region' field"
            )
        return region

    async def resolve_identity(self) -> NodeIdentity:
        """Run the four lookups in order and build a NodeIdentity."""
        private_ip = await self.get_private_ip()
        instance_id = await self.get_instance_id()
        availability_zone = await self.get_availability_zone()
        region = await self.get_region()
        identity = NodeIdentity(
            instance_id=instance_id,
            private_ip=private_ip,
            availability_zone=availability_zone,
            region=region,
        )
        logger.info(
            "Resolved instance %s (%s) in %s/%s",
            identity.instance_id,
            identity.private_ip,
            identity.region,
            identity.availability_zone,
        )
        return identity
