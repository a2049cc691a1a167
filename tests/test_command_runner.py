import sys

import pytest

from nomad_bootstrap.utils.async_command_runner import (
    CommandError,
    command_exists,
    run_command,
)


@pytest.mark.asyncio
async def test_run_command_returns_stdout():
    out = await run_command([sys.executable, "-c", "print(' hello ')"])
    assert out == "hello"


@pytest.mark.asyncio
async def test_non_zero_exit_raises_with_code():
    with pytest.raises(CommandError) as excinfo:
        await run_command([sys.executable, "-c", "import sys; sys.exit(4)"])
    assert excinfo.value.return_code == 4


@pytest.mark.asyncio
async def test_missing_command():
    with pytest.raises(CommandError, match="Command not found"):
        await run_command(["definitely-not-a-real-command-xyz"])


def test_command_exists():
    assert command_exists(sys.executable)
    assert not command_exists("definitely-not-a-real-command-xyz")
