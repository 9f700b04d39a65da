"""
Readiness checks for the desktop container.

Checks poll a sampled value until a predicate accepts it or the attempt
budget runs out. They report booleans; escalation is left to the caller.
"""

import asyncio
import logging
import re
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

import httpx

from desktop_config import DesktopConfig
from docker_cli import CommandResult, DockerCLI
from retry import Sleeper

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DIMENSIONS_RE = re.compile(r"dimensions:\s+(\S+)")


def parse_dimensions(xdpyinfo_output: str) -> Optional[str]:
    """Extract ``WIDTHxHEIGHT`` from ``xdpyinfo`` output (the ``dimensions:`` line)."""
    match = _DIMENSIONS_RE.search(xdpyinfo_output or "")
    return match.group(1) if match else None


def running_programs(status_output: str) -> List[str]:
    """Names of programs that ``supervisorctl status`` reports as RUNNING."""
    names = []
    for line in (status_output or "").splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "RUNNING":
            names.append(parts[0])
    return names


class ReadinessChecker:
    """Polls conditions inside the desktop container."""

    def __init__(
        self,
        config: DesktopConfig,
        engine: DockerCLI,
        sleep: Sleeper = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.engine = engine
        self.sleep = sleep
        self.transport = transport

    async def wait(
        self,
        description: str,
        sample: Callable[[], Awaitable[T]],
        predicate: Callable[[T], bool],
        attempts: int,
        delay: float,
    ) -> bool:
        value = None
        for attempt in range(1, attempts + 1):
            value = await sample()
            if predicate(value):
                logger.info("%s: ready (attempt %d, got %s)", description, attempt, value)
                return True
            logger.info("%s: not ready (attempt %d/%d, got %s)", description, attempt, attempts, value)
            if attempt < attempts:
                await self.sleep(delay)
        logger.error("%s: not ready after %d attempts (last value %s)", description, attempts, value)
        return False

    async def supervisor_ready(self, programs: Optional[Iterable[str]] = None) -> bool:
        """At least one managed program (of ``programs``, when given) reports RUNNING."""
        wanted = set(programs or ())

        async def sample() -> List[str]:
            result = await self.engine.exec(self.config.container_name, "supervisorctl status")
            return running_programs(result.stdout)

        def predicate(names: List[str]) -> bool:
            if wanted:
                return any(n in wanted for n in names)
            return bool(names)

        logger.info("Verifying supervisord is ready in container %s...", self.config.container_name)
        return await self.wait(
            "supervisord",
            sample,
            predicate,
            self.config.supervisor_attempts,
            self.config.supervisor_delay,
        )

    async def current_resolution(self) -> Optional[str]:
        result = await self.engine.exec(
            self.config.container_name,
            "xdpyinfo | grep dimensions",
            env={"DISPLAY": self.config.display},
        )
        if not result.ok:
            return None
        return parse_dimensions(result.stdout)

    async def resolution_matches(self) -> bool:
        """The virtual display reports exactly the configured resolution."""
        expected = self.config.resolution
        logger.info("Verifying VNC resolution for container %s...", self.config.container_name)
        return await self.wait(
            f"VNC resolution (expected {expected})",
            self.current_resolution,
            lambda value: value == expected,
            self.config.resolution_attempts,
            self.config.resolution_delay,
        )

    async def port_answers(self) -> CommandResult:
        """Connectivity check of the published port; any HTTP response counts."""
        url = f"http://{self.config.check_host}:{self.config.host_port}/"
        argv = ["GET", url]
        try:
            async with httpx.AsyncClient(timeout=5, transport=self.transport) as client:
                resp = await client.get(url)
        except httpx.HTTPError as e:
            return CommandResult(argv, 1, "", f"{url} is not answering: {e}")
        return CommandResult(argv, 0, f"{url} answered with HTTP {resp.status_code}", "")
