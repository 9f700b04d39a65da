import logging
from typing import List, Optional

import httpx
import pytest

from desktop_config import DesktopConfig
from docker_cli import CommandResult, ContainerState, DockerCLI
from lifecycle import ContainerLifecycle
from readiness import ReadinessChecker
from retry import RetryExecutor

# Shape of the supervisord.conf shipped in dorowu/ubuntu-desktop-lxde-vnc
IMAGE_SUPERVISORD_CONF = """\
[supervisord]
redirect_stderr=true
stopsignal=QUIT
autorestart=true
directory=/root

[program:nginx]
priority=10
command=nginx -c /etc/nginx/nginx.conf -g 'daemon off;'

[group:x]
programs=xvfb,wm,lxpanel,pcmanfm,x11vnc,novnc

[program:wm]
priority=15
command=/usr/bin/openbox
environment=DISPLAY=":1",HOME="%HOME%",USER="%USER%"

[program:xvfb]
priority=10
command=/usr/local/bin/xvfb.sh
stopsignal=KILL

[program:x11vnc]
priority=20
user=%USER%
command=x11vnc -display :1 -xkb -forever -shared -repeat -capslock
"""

SUPERVISOR_STATUS = """\
nginx                            RUNNING   pid 10, uptime 0:00:12
x:x11vnc                         RUNNING   pid 14, uptime 0:00:12
x:xvfb                           RUNNING   pid 12, uptime 0:00:12
"""


class FakeDocker(DockerCLI):
    """In-memory stand-in for the docker CLI and the desktop container."""

    def __init__(self, state: ContainerState = ContainerState.ABSENT, conf: str = IMAGE_SUPERVISORD_CONF):
        super().__init__()
        self.exists = state is not ContainerState.ABSENT
        self.running = state is ContainerState.RUNNING
        self.conf = conf
        self.generation = 0
        self.bad_generations = set()
        self.dimensions_output: Optional[str] = None
        self.start_ok = True
        self.supervisor_status = SUPERVISOR_STATUS
        self.workload_exit_codes: List[int] = [0]
        self.info_results: List[bool] = []
        self.daemon_up = True

        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.created = 0
        self.removed = 0
        self.conf_writes = 0
        self.workload_scripts: List[str] = []
        self.streamed: List[List[str]] = []

    def count(self, *prefix: str) -> int:
        return sum(1 for c in self.calls if c[: len(prefix)] == list(prefix))

    def exec_scripts(self) -> List[str]:
        return [c[-1] for c in self.calls if c[0] == "exec"]

    async def _stream(self, argv, timeout):
        self.streamed.append(argv[argv.index(self.binary) + 1:])
        result = await self._execute(argv, None, timeout)
        result.streamed = True
        return result

    async def _execute(self, argv, input, timeout):
        args = argv[argv.index(self.binary) + 1:]
        self.calls.append(args)
        self.inputs.append(input)
        cmd = args[0]

        def result(code=0, out="", err=""):
            return CommandResult(argv, code, out, err)

        if cmd == "info":
            if self.info_results:
                return result(0 if self.info_results.pop(0) else 1)
            return result(0 if self.daemon_up else 1)
        if cmd == "ps":
            visible = self.exists and ("-a" in args or self.running)
            return result(out="f00dfeed\n" if visible else "")
        if cmd == "volume":
            return result(out=f"{args[-1]}\n")
        if cmd == "run":
            self.exists = self.running = True
            self.created += 1
            self.generation += 1
            self.conf = IMAGE_SUPERVISORD_CONF
            return result(out="c0ffee\n")
        if cmd == "start":
            if self.start_ok and self.exists:
                self.running = True
                return result(out=f"{args[-1]}\n")
            return result(1, err="Error response from daemon: failed to start")
        if cmd == "rm":
            if not self.exists:
                return result(1, err="Error: No such container")
            self.exists = self.running = False
            self.removed += 1
            return result(out=f"{args[-1]}\n")
        if cmd == "logs":
            return result(out="container log line\n")
        if cmd == "exec":
            return self._exec(args[-1], input, result)
        return result(1, err=f"unknown command {cmd}")

    def _exec(self, script, input, result):
        if not self.running:
            return result(1, err="Error response from daemon: container is not running")
        if script.startswith("cat > "):
            self.conf = input
            self.conf_writes += 1
            return result()
        if script.startswith("cat "):
            return result(out=self.conf)
        if "xdpyinfo" in script:
            if self.dimensions_output is not None:
                return result(out=self.dimensions_output)
            size = "1024x768" if self.generation in self.bad_generations else "1366x641"
            return result(out=f"  dimensions:    {size} pixels (361x169 millimeters)\n")
        if script == "supervisorctl status":
            return result(out=self.supervisor_status)
        if script.startswith("supervisorctl"):
            return result()
        if "xauth add" in script:
            return result()
        if "play.sh" in script:
            self.workload_scripts.append(script)
            code = self.workload_exit_codes.pop(0) if len(self.workload_exit_codes) > 1 else self.workload_exit_codes[0]
            return result(code, out="workload output\n")
        return result(127, err=f"bash: unknown script {script}")


class FakeSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


@pytest.fixture
def config(tmp_path):
    return DesktopConfig(log_dir=str(tmp_path))


@pytest.fixture
def sleep():
    return FakeSleep()


@pytest.fixture
def transport():
    return httpx.MockTransport(lambda request: httpx.Response(200, text="noVNC"))


@pytest.fixture
def make_lifecycle(config, sleep, transport):
    def factory(engine: FakeDocker, cfg: DesktopConfig = None) -> ContainerLifecycle:
        cfg = cfg or config
        checker = ReadinessChecker(cfg, engine, sleep=sleep, transport=transport)
        executor = RetryExecutor(cfg.command_attempts, cfg.command_delay, sleep=sleep)
        return ContainerLifecycle(cfg, engine, checker=checker, executor=executor, sleep=sleep)

    return factory


@pytest.fixture
def health_logger():
    logger = logging.getLogger("tests.health")
    logger.setLevel(logging.INFO)
    return logger
