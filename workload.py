"""Workload entry point executed inside the desktop container."""

import logging
import shlex

from desktop_config import DesktopConfig
from docker_cli import DockerCLI
from retry import RetryExecutor

logger = logging.getLogger(__name__)


class WorkloadRunner:
    def __init__(self, config: DesktopConfig, engine: DockerCLI, executor: RetryExecutor):
        self.config = config
        self.engine = engine
        self.executor = executor

    def setup_script(self) -> str:
        """First run: install tools, clone the workload and start it."""
        cfg = self.config
        packages = " ".join(shlex.quote(p) for p in cfg.setup_packages)
        workdir = shlex.quote(cfg.workload_dir)
        return (
            f"(apt update || true) && apt install -y {packages} && "
            f"git clone {shlex.quote(cfg.workload_repo)} {workdir} && "
            f"cd {workdir} && bash {shlex.quote(cfg.workload_script)}"
        )

    def resume_script(self) -> str:
        """Existing container: reuse the cloned workload and its virtualenv."""
        cfg = self.config
        return (
            f"cd {shlex.quote(cfg.workload_dir)} && "
            f"source {shlex.quote(cfg.workload_venv)}/bin/activate && "
            f"bash {shlex.quote(cfg.workload_script)}"
        )

    async def run(self, fresh: bool) -> bool:
        cfg = self.config
        if fresh:
            logger.info("Executing setup and %s for new container...", cfg.workload_script)
            script = self.setup_script()
        else:
            logger.info("Executing %s for existing container...", cfg.workload_script)
            script = self.resume_script()

        ok = await self.executor.run(
            f"workload {cfg.workload_script}",
            lambda: self.engine.exec(cfg.container_name, script, env=cfg.session_env, stream=True),
            attempts=cfg.workload_attempts,
        )
        if not ok:
            logger.error("Error: %s failed.", cfg.workload_script)
        return ok
