"""Shared utilities for container operations."""

import asyncio
import io
import os
import tarfile

from docker.models.containers import Container


async def wait_for_container_ready(
    container: Container,
    max_wait: float = 2.0,
    interval: float = 0.05,
    stable_checks_required: int = 3,
) -> bool:
    """
    Wait for a container to reach a stable running state.

    Uses polling with stability checks to ensure the container
    is truly running before returning.

    Args:
        container: Docker container to wait for
        max_wait: Maximum time to wait in seconds
        interval: Polling interval in seconds
        stable_checks_required: Number of consecutive running checks required

    Returns:
        True if container is running, False otherwise
    """
    stable_checks = 0
    total_wait = 0.0

    while total_wait < max_wait:
        try:
            await run_in_executor(container.reload)
            if getattr(container, "status", "") == "running":
                stable_checks += 1
                if stable_checks >= stable_checks_required:
                    return True
            else:
                stable_checks = 0
        except Exception:
            stable_checks = 0
        await asyncio.sleep(interval)
        total_wait += interval

    # Final check
    try:
        await run_in_executor(container.reload)
        return getattr(container, "status", "") == "running"
    except Exception:
        return False


def build_file_archive(local_path: str, arcname: str) -> bytes:
    """
    Pack a single file into an in-memory tar archive.

    Docker only accepts file uploads as tar streams.

    Args:
        local_path: File on the host
        arcname: Name the file gets inside the archive

    Returns:
        The tar archive as bytes
    """
    stream = io.BytesIO()
    with tarfile.open(fileobj=stream, mode="w") as tar:
        info = tar.gettarinfo(local_path, arcname=arcname)
        info.mode = 0o644
        info.uid = info.gid = 0
        info.uname = info.gname = "root"
        with open(local_path, "rb") as fh:
            tar.addfile(info, fh)
    return stream.getvalue()


def split_remote_path(remote_path: str):
    """Split an in-container path into (directory, filename)."""
    directory, filename = os.path.split(remote_path)
    return directory or "/", filename


async def run_in_executor(func, *args):
    """
    Run a blocking function in the default thread pool executor.

    Args:
        func: Blocking function to run
        *args: Arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)
