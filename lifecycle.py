"""
Container lifecycle for the VNC desktop.

Brings the desktop container from absent/stopped/running to running with a
verified display configuration. A wrong resolution after configuration is
escalated to a full container replacement, bounded by
``DesktopConfig.max_recreations``.
"""

import asyncio
import logging
import shlex
from typing import Optional

from desktop_config import DesktopConfig
from docker_cli import ContainerState, DockerCLI, RunSpec
from readiness import ReadinessChecker
from retry import RetryExecutor, Sleeper
from supervisord_conf import SupervisorConfig

logger = logging.getLogger(__name__)


class DeploymentError(Exception):
    """The desktop container could not be brought to a verified running state."""


class ContainerLifecycle:
    """Create, start, configure and verify the desktop container."""

    def __init__(
        self,
        config: DesktopConfig,
        engine: DockerCLI,
        checker: Optional[ReadinessChecker] = None,
        executor: Optional[RetryExecutor] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.config = config
        self.engine = engine
        self.sleep = sleep
        self.checker = checker or ReadinessChecker(config, engine, sleep=sleep)
        self.executor = executor or RetryExecutor(config.command_attempts, config.command_delay, sleep=sleep)

    @property
    def name(self) -> str:
        return self.config.container_name

    async def detect_state(self) -> ContainerState:
        state = await self.engine.container_state(self.name)
        logger.info("Container %s is %s.", self.name, state.value)
        return state

    async def ensure_running(self, state: ContainerState) -> bool:
        """
        Drive the container to a configured, verified running state.

        Args:
            state: State observed by the caller

        Returns:
            True when the running container was freshly created
        """
        fresh = False
        if state is ContainerState.ABSENT:
            logger.info("Starting new Docker container %s...", self.name)
            await self.create()
            fresh = True
        elif state is ContainerState.STOPPED:
            logger.info("Starting stopped Docker container %s...", self.name)
            started = await self.executor.run(f"docker start {self.name}", lambda: self.engine.start(self.name))
            if not started:
                logger.warning("Removing failed container %s to recreate it...", self.name)
                await self.executor.run(f"docker rm {self.name}", lambda: self.engine.remove(self.name))
                await self.create()
                fresh = True
        else:
            logger.info("Container %s is already running.", self.name)

        if state is not ContainerState.RUNNING:
            logger.info("Docker container %s started.", self.name)
            await self.sleep(self.config.settle_delay)

        recreated = await self.configure(fresh)
        if state is not ContainerState.RUNNING or recreated:
            await self.verify_post_start()
        return fresh or recreated

    async def create(self) -> None:
        volume = self.config.volume_name
        spec = RunSpec(
            name=self.name,
            image=self.config.image,
            ports={self.config.host_port: self.config.container_port},
            volumes={volume: self.config.volume_mount},
            env=self.config.container_env,
        )
        if not await self.executor.run(f"docker volume create {volume}", lambda: self.engine.create_volume(volume)):
            raise DeploymentError(f"Could not create volume {volume}")
        if not await self.executor.run(f"docker run {self.config.image}", lambda: self.engine.run_container(spec)):
            raise DeploymentError(f"Could not create container {self.name}")

    async def remove(self, force: bool = True) -> bool:
        return await self.executor.run(
            f"docker rm {'-f ' if force else ''}{self.name}",
            lambda: self.engine.remove(self.name, force=force),
        )

    async def recreate(self) -> None:
        await self.remove(force=True)
        await self.create()
        await self.sleep(self.config.settle_delay)

    async def configure(self, fresh: bool) -> bool:
        """
        Apply display/auth configuration and verify the resolution.

        A mismatch replaces the whole container (not just the display
        programs) up to ``max_recreations`` times.

        Returns:
            True if the container was replaced along the way
        """
        recreations = 0
        while True:
            await self.apply_configuration(fresh)
            if await self.checker.resolution_matches():
                logger.info("VNC resolution set and verified successfully.")
                break
            if recreations >= self.config.max_recreations:
                logger.error("VNC resolution still invalid after %d recreation(s).", recreations)
                await self.dump_logs()
                raise DeploymentError(f"VNC resolution of {self.name} is not {self.config.resolution}")
            recreations += 1
            logger.error("Failed to verify VNC resolution. Recreating container %s...", self.name)
            await self.recreate()
            fresh = True

        logger.info("Container startup logs:")
        await self.dump_logs()
        return recreations > 0

    async def apply_configuration(self, fresh: bool) -> None:
        cfg = self.config
        logger.info("Setting VNC resolution to %s for container %s...", cfg.resolution, self.name)
        await self.rewrite_supervisor_conf()

        logger.info("Configuring X11 authentication...")
        xauth = shlex.quote(cfg.xauthority)
        owner = f"{cfg.account}:{cfg.account}"
        auth_script = (
            f"rm -f {xauth} && touch {xauth} && chown {owner} {xauth} && chmod 600 {xauth} && "
            f"XAUTHORITY={xauth} xauth add {cfg.display} . $(mcookie)"
        )
        if not await self.executor.run("configure X11 authentication", lambda: self.engine.exec(self.name, auth_script)):
            logger.warning("Failed to configure X11 authentication for %s.", cfg.account)
            await self.dump_logs()

        if not fresh:
            await self.restart_display_programs()

        logger.info("Waiting %s seconds for services to stabilize...", cfg.stabilize_delay)
        await self.sleep(cfg.stabilize_delay)

        status = await self.engine.exec(self.name, "supervisorctl status")
        logger.info("Supervisord status:\n%s", status.output)

    async def rewrite_supervisor_conf(self) -> bool:
        """Force resolution, account and VNC flags in the supervisord config. Returns True if rewritten."""
        cfg = self.config
        path = shlex.quote(cfg.supervisor_conf)
        current = await self.engine.exec(self.name, f"cat {path}")
        if not current.ok:
            logger.warning("Cannot read %s: %s", cfg.supervisor_conf, current.output)
            return False

        conf = SupervisorConfig.parse(current.stdout)
        conf.force_display_resolution(cfg.display, cfg.geometry)
        conf.force_account(cfg.account, cfg.home)
        conf.force_program_command(cfg.vnc_program, cfg.vnc_command)
        text = conf.render()
        if text == current.stdout:
            logger.info("Supervisord configuration already up to date.")
            return False

        written = await self.executor.run(
            f"write {cfg.supervisor_conf}",
            lambda: self.engine.exec(self.name, f"cat > {path}", input=text),
        )
        if not written:
            logger.warning("Failed to write %s.", cfg.supervisor_conf)
            return False
        logger.info("Supervisord configuration after update:\n%s", text)
        return True

    async def restart_display_programs(self) -> None:
        """Restart only the display and VNC programs, not supervisord itself."""
        await self.checker.supervisor_ready()
        await self.executor.run(
            "supervisorctl reread/update",
            lambda: self.engine.exec(self.name, "supervisorctl reread && supervisorctl update"),
        )
        logger.info("Restarting %s...", ", ".join(self.config.restart_programs))
        for index, program in enumerate(self.config.restart_programs):
            if index:
                await self.sleep(self.config.restart_gap)
            restarted = await self.executor.run(
                f"supervisorctl restart {program}",
                lambda program=program: self.engine.exec(self.name, f"supervisorctl restart {program}"),
            )
            if not restarted:
                logger.warning("Failed to restart %s.", program)

    async def verify_post_start(self) -> None:
        if not await self.checker.supervisor_ready():
            raise DeploymentError(f"Supervisord never became ready in {self.name}")
        port = self.config.host_port
        if not await self.executor.run(f"check port {port}", self.checker.port_answers):
            logger.error("VNC service not accessible on port %s.", port)
            await self.dump_logs()
            raise DeploymentError(f"VNC service not accessible on port {port}")

    async def dump_logs(self) -> None:
        result = await self.engine.logs(self.name)
        if result.output:
            logger.info("docker logs %s:\n%s", self.name, result.output)
