"""
nomad_bootstrap/utils/filesystem.py

The file-system effect layer: every write, chown, chmod, symlink and user
creation performed by a run goes through here. Each helper is safe to call
again on a host where the target state already exists.
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles

from nomad_bootstrap.utils.async_command_runner import run_command

logger = logging.getLogger(__name__)


def user_exists(user: str) -> bool:
    try:
        pwd.getpwnam(user)
    except KeyError:
        return False
    return True


def get_owner_of_path(path: Path) -> str:
    """Return the user name owning `path`."""
    return pwd.getpwuid(os.stat(path).st_uid).pw_name


def set_owner(path: Path, user: str) -> None:
    """chown `path` to user:user (the group useradd creates alongside the user)."""
    shutil.chown(path, user=user, group=user)


async def ensure_user(user: str) -> bool:
    """
    Create `user` with useradd unless it already exists.

    Returns:
        bool: True if the user was created, False if it was already present.
    """
    if user_exists(user):
        logger.info("User %s already exists", user)
        return False
    logger.info("Creating user %s", user)
    await run_command(["useradd", user])
    return True


def ensure_directory(path: Path, user: Optional[str] = None) -> None:
    """mkdir -p `path`, then chown it to `user` if given."""
    path.mkdir(parents=True, exist_ok=True)
    if user is not None:
        set_owner(path, user)


async def write_file(
    path: Path,
    content: str,
    *,
    user: Optional[str] = None,
    mode: Optional[int] = None,
) -> None:
    """
    Replace `path` with `content`.

    The content is written to a sibling temp file which is then renamed over
    `path`, so the old file is never blended with the new one. Ownership and
    mode are applied before the rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(content)
        if mode is not None:
            os.chmod(tmp_path, mode)
        else:
            os.chmod(tmp_path, 0o644)
        if user is not None:
            set_owner(tmp_path, user)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def ensure_symlink(target: Path, link: Path) -> bool:
    """
    Create `link` -> `target` if nothing exists at `link`.

    Returns:
        bool: True if the link was created, False if `link` was already present.
    """
    if os.path.lexists(link):
        logger.info("%s already exists, leaving it in place", link)
        return False
    link.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(target, link)
    logger.info("Symlinked %s -> %s", link, target)
    return True
