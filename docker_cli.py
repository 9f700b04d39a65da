"""
Async wrapper around the Docker command line client.

Every call spawns the ``docker`` binary (optionally through ``sudo``) and
returns a CommandResult; nothing here retries or sleeps.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class EngineCommandError(Exception):
    """A docker command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stdout: str = "", stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command exited with {returncode}: {' '.join(self.argv)}: {stderr.strip() or 'no stderr available'}"
        )


class ContainerState(Enum):
    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    # output already logged line by line while the command ran
    streamed: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, the way ``2>&1`` would show them."""
        parts = [p.strip() for p in (self.stdout, self.stderr) if p and p.strip()]
        return "\n".join(parts)

    def check(self) -> "CommandResult":
        if not self.ok:
            raise EngineCommandError(self.argv, self.returncode, self.stdout, self.stderr)
        return self


@dataclass
class RunSpec:
    """Arguments for ``docker run -d``."""

    name: str
    image: str
    ports: Dict[int, int] = field(default_factory=dict)  # host -> container
    volumes: Dict[str, str] = field(default_factory=dict)  # volume -> mount point
    env: Dict[str, str] = field(default_factory=dict)


class DockerCLI:
    """Thin async facade over ``docker`` subcommands."""

    def __init__(self, binary: str = "docker", sudo: bool = False, tail_lines: int = 200):
        self.binary = binary
        self.sudo = sudo
        self.tail_lines = tail_lines

    def _argv(self, args: Sequence[str]) -> List[str]:
        prefix = ["sudo"] if self.sudo else []
        return prefix + [self.binary] + [str(a) for a in args]

    async def _execute(self, argv: List[str], input: Optional[str], timeout: Optional[float]) -> CommandResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            return CommandResult(argv, 127, "", str(e))

        data = input.encode("utf-8") if input is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(data), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandResult(argv, 124, "", f"timed out after {timeout}s")
        return CommandResult(
            argv,
            proc.returncode if proc.returncode is not None else 1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _stream(self, argv: List[str], timeout: Optional[float]) -> CommandResult:
        """Log output line by line as it arrives; only the last ``tail_lines`` lines are kept."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=2 ** 20,
            )
        except FileNotFoundError as e:
            return CommandResult(argv, 127, "", str(e), streamed=True)

        tail = deque(maxlen=self.tail_lines)

        async def pump() -> int:
            async for raw in proc.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                tail.append(line)
                logger.info("%s", line)
            return await proc.wait()

        try:
            returncode = await asyncio.wait_for(pump(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return CommandResult(argv, 124, "", f"timed out after {timeout}s", streamed=True)
        stdout = "".join(f"{line}\n" for line in tail)
        return CommandResult(argv, returncode, stdout, "", streamed=True)

    async def run(
        self,
        *args: str,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
        stream: bool = False,
    ) -> CommandResult:
        argv = self._argv(args)
        logger.debug("Running: %s", " ".join(argv))
        if stream:
            return await self._stream(argv, timeout)
        return await self._execute(argv, input, timeout)

    async def info(self) -> bool:
        result = await self.run("info", timeout=60)
        return result.ok

    async def container_state(self, name: str) -> ContainerState:
        name_filter = f"name=^{name}$"
        existing = await self.run("ps", "-a", "-q", "-f", name_filter)
        if not existing.stdout.strip():
            return ContainerState.ABSENT
        running = await self.run("ps", "-q", "-f", name_filter)
        if running.stdout.strip():
            return ContainerState.RUNNING
        return ContainerState.STOPPED

    async def create_volume(self, name: str) -> CommandResult:
        return await self.run("volume", "create", name)

    async def run_container(self, spec: RunSpec) -> CommandResult:
        args: List[str] = ["run", "-d", "--name", spec.name]
        for host_port, container_port in spec.ports.items():
            args += ["-p", f"{host_port}:{container_port}"]
        for volume, mount in spec.volumes.items():
            args += ["-v", f"{volume}:{mount}"]
        for key, value in spec.env.items():
            args += ["-e", f"{key}={value}"]
        args.append(spec.image)
        return await self.run(*args)

    async def start(self, name: str) -> CommandResult:
        return await self.run("start", name)

    async def remove(self, name: str, force: bool = False) -> CommandResult:
        return await self.run("rm", "-f", name) if force else await self.run("rm", name)

    async def exec(
        self,
        name: str,
        script: str,
        env: Optional[Dict[str, str]] = None,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
        stream: bool = False,
    ) -> CommandResult:
        """Run ``bash -c script`` inside the container; ``stream`` logs output while it runs."""
        if stream and input is not None:
            raise ValueError("cannot pipe input into a streamed command")
        args: List[str] = ["exec"]
        if input is not None:
            args.append("-i")
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        args += [name, "bash", "-c", script]
        return await self.run(*args, input=input, timeout=timeout, stream=stream)

    async def logs(self, name: str, tail: Optional[int] = None) -> CommandResult:
        args = ["logs"]
        if tail is not None:
            args += ["--tail", str(tail)]
        args.append(name)
        return await self.run(*args)
