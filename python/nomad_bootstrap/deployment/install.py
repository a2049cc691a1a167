"""
Provides an idempotent Nomad install on a single EC2 instance (APT- or
YUM-based). Every step can be re-run on a host that already has the result:

  1) Install curl, unzip and jq with whichever package manager is present.
  2) Create the run-as user if missing.
  3) Create <root>/{bin,config,data,tls/ca} owned by that user.
  4) Resolve the download URL from the explicit URL or the version.
  5) Download the release zip, retrying transient failures.
  6) Unpack nomad into <root>/bin and symlink it into /usr/local/bin.
  7) Install the run-nomad launcher next to the binary.
  8) Check that `nomad` resolves on PATH.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import sys
import tempfile
import zipfile
from pathlib import Path
from typing import Any, Awaitable, Callable

import aiofiles
import aiohttp

from nomad_bootstrap.errors import (
    BootstrapError,
    MissingDependencyError,
    PostConditionError,
)
from nomad_bootstrap.models.install import (
    INSTALL_DEPENDENCIES,
    InstallationPlan,
    PackageManager,
)
from nomad_bootstrap.utils.async_command_runner import command_exists, run_command
from nomad_bootstrap.utils.async_retry import (
    DEFAULT_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    retry,
)
from nomad_bootstrap.utils.filesystem import (
    ensure_directory,
    ensure_symlink,
    ensure_user,
    set_owner,
    write_file,
)

logger = logging.getLogger(__name__)

BINARY_NAME = "nomad"
LAUNCHER_NAME = "run-nomad"
SYSTEM_BIN_DIR = Path("/usr/local/bin")
DOWNLOAD_TIMEOUT_SECONDS = 300.0

Downloader = Callable[[str, Path], Awaitable[Path]]


def detect_package_manager() -> PackageManager:
    """
    Return the first supported package manager found on PATH.

    Raises:
        MissingDependencyError: If neither apt-get nor yum is installed.
    """
    for manager in PackageManager:
        if command_exists(manager.value):
            return manager
    raise MissingDependencyError(
        "Could not find apt-get or yum. Cannot install dependencies on this OS."
    )


async def install_dependencies() -> None:
    manager = detect_package_manager()
    logger.info(
        "Installing dependencies %s with %s", ", ".join(INSTALL_DEPENDENCIES), manager.value
    )
    if manager is PackageManager.APT:
        await run_command(["apt-get", "update", "-y"])
        await run_command(["apt-get", "install", "-y", *INSTALL_DEPENDENCIES])
    else:
        await run_command(["yum", "install", "-y", *INSTALL_DEPENDENCIES])


async def create_install_layout(plan: InstallationPlan) -> None:
    """mkdir -p the install root and its subdirectories, all owned by plan.user."""
    logger.info("Creating install dirs under %s", plan.install_root)
    ensure_directory(plan.install_root, plan.user)
    for subdir in plan.subdirectories():
        ensure_directory(subdir, plan.user)
        # mkdir -p leaves intermediate dirs (e.g. tls/) owned by root
        for parent in subdir.relative_to(plan.install_root).parents:
            set_owner(plan.install_root / parent, plan.user)


async def download_artifact(url: str, destination: Path) -> Path:
    """
    Stream `url` to `destination`.

    Raises:
        aiohttp.ClientError: On connection failures or non-2xx responses.
    """
    timeout = aiohttp.ClientTimeout(total=DOWNLOAD_TIMEOUT_SECONDS)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url, raise_for_status=True) as resp:
            async with aiofiles.open(destination, "wb") as f:
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    await f.write(chunk)
    return destination


def extract_binary(archive: Path, work_dir: Path) -> Path:
    """Unpack the release zip and return the path of the nomad binary inside it."""
    try:
        with zipfile.ZipFile(archive) as zf:
            if BINARY_NAME not in zf.namelist():
                raise BootstrapError(
                    f"{archive.name} does not contain '{BINARY_NAME}'."
                )
            return Path(zf.extract(BINARY_NAME, path=work_dir))
    except zipfile.BadZipFile as exc:
        raise BootstrapError(f"{archive.name} is not a valid zip archive.") from exc


async def place_binary(
    extracted: Path,
    plan: InstallationPlan,
    system_bin_dir: Path = SYSTEM_BIN_DIR,
) -> Path:
    """
    Copy the binary into <root>/bin, make it executable, and symlink it.

    The copy lands in a temp file beside the destination and is renamed over
    it, so a running agent keeps its old inode instead of failing with ETXTBSY.
    """
    bin_dir = plan.install_root / "bin"
    destination = bin_dir / BINARY_NAME
    logger.info("Installing %s to %s", BINARY_NAME, destination)
    fd, tmp_name = tempfile.mkstemp(dir=bin_dir, prefix=f".{BINARY_NAME}.")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        shutil.copyfile(extracted, tmp_path)
        os.chmod(tmp_path, 0o755)
        set_owner(tmp_path, plan.user)
        os.replace(tmp_path, destination)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    ensure_symlink(destination, system_bin_dir / BINARY_NAME)
    return destination


def render_launcher(plan: InstallationPlan, interpreter: str = sys.executable) -> str:
    """
    A small shell launcher that runs the run-nomad entry point with the
    directories of this install as defaults. Flags passed to the launcher
    come last, so they override those defaults.
    """
    root = plan.install_root
    bin_dir = shlex.quote(str(root / "bin"))
    config_dir = shlex.quote(str(root / "config"))
    data_dir = shlex.quote(str(root / "data"))
    return (
        "#!/bin/sh\n"
        f"exec {shlex.quote(interpreter)} -m nomad_bootstrap.cli.run_nomad "
        f"--bin-dir {bin_dir} --config-dir {config_dir} "
        f'--data-dir {data_dir} "$@"\n'
    )


async def install_launcher(plan: InstallationPlan) -> Path:
    launcher = plan.install_root / "bin" / LAUNCHER_NAME
    logger.info("Installing %s to %s", LAUNCHER_NAME, launcher)
    await write_file(launcher, render_launcher(plan), user=plan.user, mode=0o755)
    return launcher


def verify_installation() -> Path:
    """
    Raises:
        PostConditionError: If `nomad` does not resolve on PATH.
    """
    found = shutil.which(BINARY_NAME)
    if found is None:
        raise PostConditionError(
            f"Could not find '{BINARY_NAME}' on PATH after install. "
            "The install is incomplete or broken."
        )
    return Path(found)


async def install(
    plan: InstallationPlan,
    *,
    downloader: Downloader = download_artifact,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    system_bin_dir: Path = SYSTEM_BIN_DIR,
) -> Path:
    """
    Run the full install sequence for `plan`.

    Args:
        plan: Validated installation parameters.
        downloader: Coroutine fetching a URL to a local path.
        max_attempts: Download attempts before giving up.
        retry_delay: Seconds between download attempts.
        sleep: Sleep used between attempts.
        system_bin_dir: Where the stable symlink is created.

    Returns:
        Path: Where `nomad` resolves on PATH.
    """
    await install_dependencies()
    await ensure_user(plan.user)
    await create_install_layout(plan)

    url = plan.resolve_download_url()
    logger.info("Downloading Nomad from %s", url)

    with tempfile.TemporaryDirectory(prefix="nomad-install-") as tmp:
        work_dir = Path(tmp)
        archive = work_dir / "nomad.zip"
        await retry(
            lambda: downloader(url, archive),
            f"Download of {url}",
            max_attempts=max_attempts,
            delay=retry_delay,
            sleep=sleep,
        )
        extracted = extract_binary(archive, work_dir / "unzipped")
        await place_binary(extracted, plan, system_bin_dir=system_bin_dir)

    await install_launcher(plan)

    found = verify_installation()
    logger.info("Nomad installed successfully at %s", found)
    return found
