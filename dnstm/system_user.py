"""Management of the system user that runs tunnel services."""

from __future__ import annotations

import os
import pwd
import subprocess
from collections.abc import Callable

DNSTM_USER = "dnstm"


class UserError(Exception):
    """A system user operation failed."""


def _run(args: list[str]) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(
            args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False
        )
    except OSError as exc:
        return subprocess.CompletedProcess(args, 127, stdout=str(exc), stderr="")
    if result.stdout is None:
        result.stdout = ""
    return result


def _lookup(username: str) -> pwd.struct_passwd:
    try:
        return pwd.getpwnam(username)
    except KeyError as exc:
        raise UserError(f"user {username} not found") from exc


def user_exists(username: str) -> bool:
    """Return True if the system user exists."""
    try:
        pwd.getpwnam(username)
    except KeyError:
        return False
    return True


def create_system_user(username: str) -> None:
    """Create a system user without home directory and with a nologin shell."""
    if user_exists(username):
        return
    result = _run(
        ["useradd", "--system", "--no-create-home", "--shell", "/usr/sbin/nologin", username]
    )
    if result.returncode != 0:
        raise UserError(
            f"failed to create user: {result.stdout}: exit status {result.returncode}"
        )


def remove_system_user(username: str) -> None:
    """Remove a system user if it exists; failures are ignored."""
    if not user_exists(username):
        return
    _run(["userdel", username])


def create_dnstm_user() -> None:
    """Create the shared service user."""
    create_system_user(DNSTM_USER)


def dnstm_user_exists() -> bool:
    """Return True if the shared service user exists."""
    return user_exists(DNSTM_USER)


def remove_dnstm_user_if_orphaned(check_installed: Callable[[], bool]) -> None:
    """Remove the shared service user unless something still uses it."""
    if check_installed():
        return
    remove_system_user(DNSTM_USER)


def remove_dnstm_user() -> None:
    """Remove the shared service user unconditionally."""
    remove_system_user(DNSTM_USER)


def chown_to_dnstm(path: str) -> None:
    """Give ownership of a file or directory to the service user."""
    entry = _lookup(DNSTM_USER)
    os.chown(path, entry.pw_uid, entry.pw_gid)


def chown_dir_to_dnstm(path: str) -> None:
    """Give ownership of a directory tree to the service user."""
    entry = _lookup(DNSTM_USER)
    result = _run(["chown", "-R", f"{entry.pw_uid}:{entry.pw_gid}", path])
    if result.returncode != 0:
        raise UserError(f"chown failed: {result.stdout}: exit status {result.returncode}")


def can_dnstm_user_read_file(path: str) -> bool:
    """Return True if the service user may read the file, judged by its mode bits."""
    entry = _lookup(DNSTM_USER)
    info = os.stat(path)
    mode = info.st_mode
    if info.st_uid == entry.pw_uid:
        return bool(mode & 0o400)
    if info.st_gid == entry.pw_gid:
        return bool(mode & 0o040)
    return bool(mode & 0o004)