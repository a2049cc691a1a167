import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nomad_bootstrap.deployment.run import resolve_run_user, run
from nomad_bootstrap.errors import MetadataUnavailable, MissingDependencyError
from nomad_bootstrap.models.node import AgentRole, ClusterTopology
from nomad_bootstrap.models.run import RunSettings
from nomad_bootstrap.models.systemd import SystemdPaths


class FakeMetadataClient:
    def __init__(self, identity=None, error=None) -> None:
        self.identity = identity
        self.error = error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def resolve_identity(self):
        if self.error is not None:
            raise self.error
        return self.identity


@pytest.fixture
def settings(tmp_path, server_topology):
    paths = SystemdPaths(
        bin_dir=tmp_path / "bin",
        config_dir=tmp_path / "config",
        data_dir=tmp_path / "data",
    )
    return RunSettings(
        topology=server_topology,
        paths=paths,
        user="nomad",
        environment=["NOMAD_ADDR=http://127.0.0.1:4646"],
    )


@pytest.fixture
def systemd():
    with patch(
        "nomad_bootstrap.deployment.run.command_exists", return_value=True
    ), patch(
        "nomad_bootstrap.deployment.run.activate_service", new_callable=AsyncMock
    ) as activate, patch("nomad_bootstrap.utils.filesystem.set_owner"):
        yield activate


@pytest.mark.asyncio
async def test_run_writes_config_and_unit(tmp_path, settings, identity, systemd):
    unit_path = tmp_path / "nomad.service"

    await run(
        settings,
        unit_path=unit_path,
        metadata_client_factory=lambda _: FakeMetadataClient(identity),
    )

    config = json.loads((tmp_path / "config" / "default.json").read_text())
    assert config["name"] == identity.instance_id
    assert config["server"]["bootstrap_expect"] == 3
    unit = unit_path.read_text()
    assert f"ConditionFileNotEmpty={tmp_path / 'config' / 'default.json'}" in unit
    assert 'Environment="NOMAD_ADDR=http://127.0.0.1:4646"' in unit
    systemd.assert_awaited_once()


@pytest.mark.asyncio
async def test_skip_config_never_touches_metadata(tmp_path, settings, systemd):
    settings = settings.model_copy(update={"skip_config": True})
    factory = MagicMock()

    await run(settings, unit_path=tmp_path / "nomad.service", metadata_client_factory=factory)

    factory.assert_not_called()
    assert not (tmp_path / "config" / "default.json").exists()
    assert (tmp_path / "nomad.service").exists()


@pytest.mark.asyncio
async def test_metadata_failure_aborts_before_writing(tmp_path, settings, systemd):
    unit_path = tmp_path / "nomad.service"
    error = MetadataUnavailable("meta-data/local-ipv4", "connection refused")

    with pytest.raises(MetadataUnavailable):
        await run(
            settings,
            unit_path=unit_path,
            metadata_client_factory=lambda _: FakeMetadataClient(error=error),
        )

    assert not unit_path.exists()
    systemd.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_systemctl(tmp_path, settings):
    with patch("nomad_bootstrap.deployment.run.command_exists", return_value=False):
        with pytest.raises(MissingDependencyError):
            await run(settings, unit_path=tmp_path / "nomad.service")


def test_resolve_run_user(tmp_path):
    topology = ClusterTopology(role={AgentRole.CLIENT})
    paths = SystemdPaths(config_dir=tmp_path)

    assert resolve_run_user(RunSettings(topology=topology, use_sudo=True)) == "root"
    assert resolve_run_user(RunSettings(topology=topology, user="svc")) == "svc"
    with patch(
        "nomad_bootstrap.deployment.run.get_owner_of_path", return_value="owner"
    ) as owner:
        assert resolve_run_user(RunSettings(topology=topology, paths=paths)) == "owner"
    owner.assert_called_once_with(Path(tmp_path))
