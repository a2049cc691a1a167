from pathlib import Path
from unittest.mock import AsyncMock, call, patch

import pytest
from pydantic import ValidationError

from nomad_bootstrap.models.systemd import SystemdPaths
from nomad_bootstrap.services.systemd import (
    activate_service,
    generate_service_unit,
    render_service_unit,
    write_service_unit,
)

PATHS = SystemdPaths(
    bin_dir=Path("/opt/nomad/bin"),
    config_dir=Path("/opt/nomad/config"),
    data_dir=Path("/opt/nomad/data"),
)


def test_unit_core_directives():
    unit = render_service_unit(generate_service_unit(PATHS, "nomad"))

    assert "ConditionFileNotEmpty=/opt/nomad/config/default.json" in unit
    assert (
        "ExecStart=/opt/nomad/bin/nomad agent -config /opt/nomad/config "
        "-data-dir /opt/nomad/data"
    ) in unit
    assert "User=nomad\nGroup=nomad" in unit
    assert "Restart=on-failure" in unit
    assert "TimeoutSec=300s" in unit
    assert "LimitNOFILE=65536" in unit
    assert "WantedBy=multi-user.target" in unit
    assert unit.index("[Unit]") < unit.index("[Service]") < unit.index("[Install]")


def test_environment_lines_keep_order_and_duplicates():
    spec = generate_service_unit(
        PATHS, "nomad", environment=["B=2", "A=1", "B=3"]
    )
    lines = [l for l in render_service_unit(spec).splitlines() if l.startswith("Environment=")]

    assert lines == ['Environment="B=2"', 'Environment="A=1"', 'Environment="B=3"']


def test_log_routing_only_when_given():
    plain = render_service_unit(generate_service_unit(PATHS, "nomad"))
    assert "StandardOutput" not in plain
    assert "StandardError" not in plain

    routed = render_service_unit(
        generate_service_unit(
            PATHS, "nomad", stdout_target="journal", stderr_target="file:/var/log/nomad.err"
        )
    )
    assert "StandardOutput=journal" in routed
    assert "StandardError=file:/var/log/nomad.err" in routed


def test_malformed_environment_rejected():
    with pytest.raises(ValidationError):
        generate_service_unit(PATHS, "nomad", environment=["NOEQUALS"])


@pytest.mark.parametrize(
    "entry", ["A=1\nExecStartPre=/bin/sh -c id", "A=1\rB=2"]
)
def test_environment_line_break_rejected(entry):
    with pytest.raises(ValidationError):
        generate_service_unit(PATHS, "nomad", environment=[entry])


@pytest.mark.parametrize("field", ["stdout_target", "stderr_target"])
def test_log_target_line_break_rejected(field):
    with pytest.raises(ValidationError):
        generate_service_unit(PATHS, "nomad", **{field: "journal\nUser=root"})


def test_user_line_break_rejected():
    with pytest.raises(ValidationError):
        generate_service_unit(PATHS, "nomad\nUser=root")


def test_environment_values_are_escaped():
    spec = generate_service_unit(
        PATHS, "nomad", environment=['MSG=say "hi"', "WIN=C:\\tmp", "PCT=100%"]
    )
    lines = [l for l in render_service_unit(spec).splitlines() if l.startswith("Environment=")]

    assert lines == [
        'Environment="MSG=say \\"hi\\""',
        'Environment="WIN=C:\\\\tmp"',
        'Environment="PCT=100%%"',
    ]


@pytest.mark.asyncio
async def test_rewrite_replaces_previous_unit(tmp_path):
    unit_path = tmp_path / "nomad.service"

    await write_service_unit(
        generate_service_unit(PATHS, "nomad", environment=["OLD=1"], stdout_target="journal"),
        unit_path,
    )
    new_spec = generate_service_unit(PATHS, "root", environment=["NEW=2"])
    await write_service_unit(new_spec, unit_path)

    content = unit_path.read_text()
    assert content == render_service_unit(new_spec)
    assert "OLD=1" not in content
    assert "StandardOutput" not in content


@pytest.mark.asyncio
async def test_activate_service_runs_systemctl():
    with patch(
        "nomad_bootstrap.services.systemd.run_command", new_callable=AsyncMock
    ) as run_command:
        await activate_service()

    assert run_command.await_args_list == [
        call(["systemctl", "daemon-reload"]),
        call(["systemctl", "enable", "nomad.service"]),
        call(["systemctl", "restart", "nomad.service"]),
    ]
