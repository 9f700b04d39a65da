#!/usr/bin/env python3
"""
VNC Desktop Keeper
Keeps a single Docker desktop container (VNC/noVNC) alive and runs the
workload inside it forever, recreating the container whenever the workload
fails.
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from enum import Enum
from typing import Optional

from desktop_config import DesktopConfig, resolve_log_dir
from docker_cli import ContainerState, DockerCLI
from engine_setup import EngineSetupError, ensure_engine
from lifecycle import ContainerLifecycle, DeploymentError
from retry import RetryExecutor, Sleeper
from workload import WorkloadRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MAIN_LOG = "start-docker.log"
HEALTH_LOG = "health.log"


def configure_logging(log_dir: str, level: int = logging.INFO) -> logging.Logger:
    """Console + main log file for everything, a separate file for the health heartbeat."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(log_dir, MAIN_LOG), mode="w", encoding="utf-8"),
        ],
        force=True,
    )
    health = logging.getLogger(f"{__name__}.health")
    health.propagate = False
    health.setLevel(logging.INFO)
    for handler in list(health.handlers):
        health.removeHandler(handler)
        handler.close()
    handler = logging.FileHandler(os.path.join(log_dir, HEALTH_LOG), encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    health.addHandler(handler)
    return health


class Phase(Enum):
    DETECT = "detect"
    PROVISION = "provision"
    WORKLOAD = "workload"
    HEARTBEAT = "heartbeat"


class DeploymentSupervisor:
    """
    Supervision loop as an explicit state machine.

    DETECT -> PROVISION -> WORKLOAD -> DETECT (workload failed, container removed)
                                    -> HEARTBEAT (workload returned, loops forever)

    Each call to ``step`` performs exactly one transition.
    """

    def __init__(
        self,
        config: DesktopConfig,
        engine: Optional[DockerCLI] = None,
        lifecycle: Optional[ContainerLifecycle] = None,
        workload: Optional[WorkloadRunner] = None,
        sleep: Sleeper = asyncio.sleep,
        health_logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.engine = engine or DockerCLI(config.docker_binary, sudo=config.sudo)
        self.sleep = sleep
        self.executor = RetryExecutor(config.command_attempts, config.command_delay, sleep=sleep)
        self.lifecycle = lifecycle or ContainerLifecycle(config, self.engine, executor=self.executor, sleep=sleep)
        self.workload = workload or WorkloadRunner(config, self.engine, self.executor)
        self.health = health_logger or logging.getLogger(f"{__name__}.health")

        self.phase = Phase.DETECT
        self.state: Optional[ContainerState] = None
        self.fresh = False
        self.restarts = 0

    async def step(self) -> Phase:
        if self.phase is Phase.DETECT:
            self.state = await self.lifecycle.detect_state()
            self.phase = Phase.PROVISION

        elif self.phase is Phase.PROVISION:
            # DeploymentError propagates: nothing sensible is left to try
            self.fresh = await self.lifecycle.ensure_running(self.state)
            self.phase = Phase.WORKLOAD

        elif self.phase is Phase.WORKLOAD:
            if await self.workload.run(self.fresh):
                logger.info("Starting process monitoring for container %s...", self.config.container_name)
                self.phase = Phase.HEARTBEAT
            else:
                await self.lifecycle.remove(force=True)
                self.restarts += 1
                logger.info("Restarting deployment cycle (%d restart(s) so far).", self.restarts)
                self.state = None
                self.phase = Phase.DETECT

        else:
            self.health.info("All critical processes running at %s.", datetime.now().strftime("%a %b %d %H:%M:%S %Y"))
            await self.sleep(self.config.heartbeat_interval)

        return self.phase

    async def run_forever(self) -> None:
        while True:
            await self.step()


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keep a VNC desktop container running its workload")
    parser.add_argument("--container-name", default=None, help="Container name (env: DESKTOP_CONTAINER_NAME)")
    parser.add_argument("--resolution", default=None, help="Required display resolution, e.g. 1366x641 (env: DESKTOP_RESOLUTION)")
    parser.add_argument("--host-port", type=int, default=None, help="Host port published for noVNC (env: DESKTOP_HOST_PORT)")
    parser.add_argument("--log-dir", default=None, help="Directory for log files (env: DESKTOP_LOG_DIR)")
    parser.add_argument("--sudo", action="store_true", help="Prefix docker commands with sudo (env: DESKTOP_DOCKER_SUDO)")
    parser.add_argument("--skip-daemon-check", action="store_true", help="Do not check or start the Docker daemon")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> DesktopConfig:
    config = DesktopConfig().apply_env_overrides()
    if args.container_name:
        config.container_name = args.container_name
    if args.resolution:
        config.resolution = args.resolution
    if args.host_port:
        config.host_port = args.host_port
    if args.log_dir:
        config.log_dir = args.log_dir
    if args.sudo:
        config.sudo = True
    # re-validate after overrides
    return DesktopConfig(**vars(config))


async def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ValueError as e:
        print(f" Error: {e}")
        return 2

    health = configure_logging(resolve_log_dir(config))
    logger.info("desktop keeper started at %s (container=%s)", datetime.now().isoformat(), config.container_name)

    supervisor = DeploymentSupervisor(config, health_logger=health)
    try:
        if not args.skip_daemon_check:
            await ensure_engine(config, supervisor.engine)
        await supervisor.run_forever()
    except EngineSetupError as e:
        logger.error("Exiting due to Docker daemon failure: %s", e)
        return 1
    except DeploymentError as e:
        logger.error("Exiting due to deployment failure: %s", e)
        return 1
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
