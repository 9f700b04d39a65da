"""
Make sure the Docker daemon answers before anything else runs.

The daemon is launched detached and left running on its own; its liveness is
only ever checked by polling ``docker info``.
"""

import asyncio
import logging
import os
import shutil
import subprocess
from typing import Callable, List, Optional

from desktop_config import DesktopConfig
from docker_cli import DockerCLI
from retry import Sleeper

logger = logging.getLogger(__name__)


class EngineSetupError(Exception):
    """The container engine is not installed or its daemon cannot be started."""


def launch_daemon(argv: List[str], log_path: str) -> None:
    """Kill a stale dockerd, then start a new one detached with output appended to ``log_path``."""
    prefix = argv[:-1]
    try:
        subprocess.run(prefix + ["pkill", "-x", "dockerd"], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except FileNotFoundError:
        logger.debug("pkill not available; not stopping a stale dockerd")
    with open(log_path, "ab") as log:
        subprocess.Popen(
            argv,
            stdout=log,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            start_new_session=True,
        )


async def ensure_engine(
    config: DesktopConfig,
    engine: DockerCLI,
    sleep: Sleeper = asyncio.sleep,
    launcher: Callable[[List[str], str], None] = launch_daemon,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> None:
    if not which(engine.binary):
        raise EngineSetupError(f"{engine.binary} not found on PATH; install Docker first")

    logger.info("Checking Docker daemon status...")
    if await engine.info():
        logger.info("Docker daemon is already running and accessible.")
        return

    logger.info("Docker daemon not accessible. Attempting to start...")
    prefix = ["sudo"] if config.sudo else []
    launcher(prefix + ["dockerd"], os.path.join(config.log_dir or "/tmp", "dockerd.log"))

    for attempt in range(1, config.daemon_attempts + 1):
        if await engine.info():
            logger.info("Docker daemon started successfully (attempt %d).", attempt)
            return
        logger.info("Docker daemon not yet available (attempt %d/%d).", attempt, config.daemon_attempts)
        if attempt < config.daemon_attempts:
            await sleep(config.daemon_delay)

    raise EngineSetupError(f"Failed to start Docker daemon after {config.daemon_attempts} attempts")
