import os

import pytest

from desktop_config import DesktopConfig, resolve_log_dir


def test_defaults():
    config = DesktopConfig()
    assert config.container_name == "agitated_cannon"
    assert config.geometry == "1366x641x24"
    assert config.vnc_command == "x11vnc -display :1 -xkb -forever -shared -repeat -capslock -nopw"
    assert config.container_env["VNC_RESOLUTION"] == "1366x641"
    assert config.session_env == {"DISPLAY": ":1", "HOME": "/root", "XAUTHORITY": "/root/.Xauthority"}


@pytest.mark.parametrize("kwargs", [{"resolution": "1366"}, {"command_attempts": 0}, {"max_recreations": -1}])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        DesktopConfig(**kwargs)


def test_env_overrides():
    config = DesktopConfig().apply_env_overrides({
        "DESKTOP_CONTAINER_NAME": "desk",
        "DESKTOP_RESOLUTION": "1920x1080",
        "DESKTOP_HOST_PORT": "7000",
        "DESKTOP_DOCKER_SUDO": "1",
    })
    assert (config.container_name, config.resolution, config.host_port, config.sudo) == ("desk", "1920x1080", 7000, True)


def test_invalid_env_overrides_are_ignored(caplog):
    config = DesktopConfig().apply_env_overrides({"DESKTOP_RESOLUTION": "big", "DESKTOP_HOST_PORT": "port"})
    assert config.resolution == "1366x641"
    assert config.host_port == 6200
    assert "DESKTOP_HOST_PORT" in caplog.text


def test_resolve_log_dir_creates_directory(tmp_path):
    config = DesktopConfig(log_dir=str(tmp_path / "logs"))
    assert resolve_log_dir(config) == str(tmp_path / "logs")
    assert os.path.isdir(tmp_path / "logs")


def test_resolve_log_dir_falls_back_to_tmp(monkeypatch, capsys):
    def refuse(path, exist_ok=False):
        raise PermissionError(path)

    monkeypatch.setattr(os, "makedirs", refuse)
    config = DesktopConfig(log_dir="/proc/forbidden")
    assert resolve_log_dir(config) == "/tmp"
    assert config.log_dir == "/tmp"
    assert "falling back to /tmp" in capsys.readouterr().err
