import json

import pytest
from aiohttp import web
from aiohttp import test_utils

from nomad_bootstrap.errors import MetadataUnavailable
from nomad_bootstrap.metadata.ec2 import AsyncMetadataClient
from nomad_bootstrap.models.metadata import MetadataSettings

IDENTITY_DOCUMENT = {
    "accountId": "123456789012",
    "instanceId": "i-0abc123def4567890",
    "region": "us-east-1",
    "availabilityZone": "us-east-1a",
}


def make_app(
    document_body: str = json.dumps(IDENTITY_DOCUMENT),
    zone_status: int = 200,
    ip_body: bytes = b"10.0.1.15",
):
    async def local_ipv4(request: web.Request) -> web.Response:
        return web.Response(body=ip_body, content_type="text/plain")

    async def instance_id(request: web.Request) -> web.Response:
        return web.Response(text="i-0abc123def4567890\n")

    async def availability_zone(request: web.Request) -> web.Response:
        return web.Response(text="us-east-1a", status=zone_status)

    async def identity_document(request: web.Request) -> web.Response:
        return web.Response(text=document_body, content_type="text/plain")

    app = web.Application()
    app.router.add_get("/latest/meta-data/local-ipv4", local_ipv4)
    app.router.add_get("/latest/meta-data/instance-id", instance_id)
    app.router.add_get(
        "/latest/meta-data/placement/availability-zone", availability_zone
    )
    app.router.add_get("/latest/dynamic/instance-identity/document", identity_document)
    return app


def settings_for(server: test_utils.TestServer) -> MetadataSettings:
    return MetadataSettings(base_url=str(server.make_url("/latest")), timeout_seconds=2)


@pytest.mark.asyncio
async def test_resolve_identity():
    async with test_utils.TestServer(make_app()) as server:
        async with AsyncMetadataClient(settings_for(server)) as client:
            identity = await client.resolve_identity()

    assert identity.private_ip == "10.0.1.15"
    assert identity.instance_id == "i-0abc123def4567890"
    assert identity.availability_zone == "us-east-1a"
    assert identity.region == "us-east-1"


@pytest.mark.asyncio
async def test_non_2xx_is_unavailable():
    async with test_utils.TestServer(make_app(zone_status=404)) as server:
        async with AsyncMetadataClient(settings_for(server)) as client:
            with pytest.raises(MetadataUnavailable) as excinfo:
                await client.resolve_identity()

    assert excinfo.value.path == "meta-data/placement/availability-zone"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["{not json", json.dumps({"accountId": "1"})])
async def test_bad_identity_document_is_unavailable(body):
    async with test_utils.TestServer(make_app(document_body=body)) as server:
        async with AsyncMetadataClient(settings_for(server)) as client:
            with pytest.raises(MetadataUnavailable):
                await client.get_region()


@pytest.mark.asyncio
async def test_unreachable_endpoint():
    settings = MetadataSettings(base_url="http://127.0.0.1:1/latest", timeout_seconds=2)
    async with AsyncMetadataClient(settings) as client:
        with pytest.raises(MetadataUnavailable):
            await client.get_private_ip()


@pytest.mark.asyncio
async def test_undecodable_body_is_unavailable():
    async with test_utils.TestServer(make_app(ip_body=b"\xff\xfe\xfa")) as server:
        async with AsyncMetadataClient(settings_for(server)) as client:
            with pytest.raises(MetadataUnavailable) as excinfo:
                await client.get_private_ip()

    assert excinfo.value.path == "meta-data/local-ipv4"
