"""
Configuration for the VNC desktop keeper.

DesktopConfig carries every fixed value the deployment needs. The defaults
describe the single desktop container this tool was written for; environment
variables and CLI flags can override a handful of them.
"""

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

_RESOLUTION_RE = re.compile(r"^\d+x\d+$")


@dataclass
class DesktopConfig:
    """Configuration for the desktop container and its supervision."""

    container_name: str = "agitated_cannon"
    image: str = "dorowu/ubuntu-desktop-lxde-vnc"
    volume_name: str = "replit_volume"
    volume_mount: str = "/root/Desktop"
    host_port: int = 6200
    container_port: int = 80
    check_host: str = "127.0.0.1"

    # Virtual display
    resolution: str = "1366x641"
    color_depth: int = 24
    display: str = ":1"
    account: str = "root"
    home: str = "/root"
    xauthority: str = "/root/.Xauthority"
    supervisor_conf: str = "/etc/supervisor/conf.d/supervisord.conf"
    vnc_program: str = "x11vnc"
    vnc_flags: str = "-xkb -forever -shared -repeat -capslock -nopw"
    restart_programs: Tuple[str, ...] = ("x:xvfb", "x:x11vnc")

    # Retry and poll budgets (attempts, seconds)
    command_attempts: int = 3
    command_delay: float = 5
    daemon_attempts: int = 10
    daemon_delay: float = 5
    supervisor_attempts: int = 10
    supervisor_delay: float = 5
    resolution_attempts: int = 5
    resolution_delay: float = 5
    settle_delay: float = 10
    stabilize_delay: float = 10
    restart_gap: float = 2
    heartbeat_interval: float = 30
    # Full container replacements allowed after a failed resolution check
    max_recreations: int = 1

    # Workload inside the container
    workload_repo: str = "https://github.com/rouhanaom45/git-inbox2"
    workload_dir: str = "/root/git-inbox2"
    workload_script: str = "play.sh"
    workload_venv: str = "myenv"
    workload_attempts: int = 3
    setup_packages: Tuple[str, ...] = ("git", "nano", "xauth")

    # Host side
    log_dir: Optional[str] = None
    docker_binary: str = "docker"
    sudo: bool = False
    extra_env: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not _RESOLUTION_RE.match(self.resolution or ""):
            raise ValueError(f"resolution must look like WIDTHxHEIGHT, got {self.resolution!r}")
        for name in (
            "command_attempts",
            "daemon_attempts",
            "supervisor_attempts",
            "resolution_attempts",
            "workload_attempts",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.max_recreations < 0:
            raise ValueError("max_recreations must not be negative")

    @property
    def geometry(self) -> str:
        """Xvfb screen geometry, e.g. 1366x641x24."""
        return f"{self.resolution}x{self.color_depth}"

    @property
    def vnc_command(self) -> str:
        return f"{self.vnc_program} -display {self.display} {self.vnc_flags}"

    @property
    def container_env(self) -> Dict[str, str]:
        env = {
            "VNC_RESOLUTION": self.resolution,
            "RESOLUTION": self.resolution,
            "HOME": self.home,
            "XAUTHORITY": self.xauthority,
        }
        env.update(self.extra_env)
        return env

    @property
    def session_env(self) -> Dict[str, str]:
        """Environment the workload sees inside the container."""
        return {"DISPLAY": self.display, "HOME": self.home, "XAUTHORITY": self.xauthority}

    def apply_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "DesktopConfig":
        environ = os.environ if environ is None else environ

        name = (environ.get("DESKTOP_CONTAINER_NAME") or "").strip()
        if name:
            self.container_name = name

        res = (environ.get("DESKTOP_RESOLUTION") or "").strip()
        if res:
            if _RESOLUTION_RE.match(res):
                self.resolution = res
            else:
                logger.warning("Invalid DESKTOP_RESOLUTION %r; using default %s", res, self.resolution)

        port = environ.get("DESKTOP_HOST_PORT")
        if port:
            try:
                self.host_port = int(port)
            except ValueError:
                logger.warning("Invalid DESKTOP_HOST_PORT; using default %s", self.host_port)

        log_dir = (environ.get("DESKTOP_LOG_DIR") or "").strip()
        if log_dir:
            self.log_dir = log_dir

        if (environ.get("DESKTOP_DOCKER_SUDO") or "").strip().lower() in ("1", "true", "yes"):
            self.sudo = True
        return self


def resolve_log_dir(config: DesktopConfig) -> str:
    """Create the log directory, falling back to /tmp when that is impossible."""
    log_dir = config.log_dir or os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError:
        sys.stderr.write(f"Warning: Cannot create {log_dir}, falling back to /tmp\n")
        log_dir = "/tmp"
    config.log_dir = log_dir
    return log_dir
