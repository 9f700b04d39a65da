from conftest import IMAGE_SUPERVISORD_CONF
from supervisord_conf import SupervisorConfig, split_environment

GEOMETRY = "1366x641x24"
VNC = "x11vnc -display :1 -xkb -forever -shared -repeat -capslock -nopw"


def configured(text: str) -> SupervisorConfig:
    conf = SupervisorConfig.parse(text)
    conf.force_display_resolution(":1", GEOMETRY)
    conf.force_account("root", "/root")
    conf.force_program_command("x11vnc", VNC)
    return conf


def test_untouched_text_renders_identically():
    text = "; header comment\n[program:a]\ncommand = run a\n  --continued\n\n# note\n[program:b]\nuser=bob\n"
    assert SupervisorConfig.parse(text).render() == text


def test_sections_and_programs():
    conf = SupervisorConfig.parse(IMAGE_SUPERVISORD_CONF)
    assert conf.sections()[:2] == ["supervisord", "program:nginx"]
    assert conf.programs() == ["nginx", "wm", "xvfb", "x11vnc"]
    assert conf.get("group:x", "programs") == "xvfb,wm,lxpanel,pcmanfm,x11vnc,novnc"
    assert conf.get("program:xvfb", "missing") is None
    assert conf.get("program:nope", "command") is None


def test_image_config_is_forced():
    conf = configured(IMAGE_SUPERVISORD_CONF)

    assert conf.get("program:xvfb", "command") == f"Xvfb :1 -screen 0 {GEOMETRY}"
    assert conf.get("program:x11vnc", "command") == VNC
    assert conf.get("program:x11vnc", "user") == "root"
    assert conf.get("program:wm", "environment") == 'DISPLAY=":1",HOME="/root",USER="root"'
    # untouched entries keep their original lines
    assert "command=nginx -c /etc/nginx/nginx.conf -g 'daemon off;'" in conf.render()
    assert "stopsignal=KILL" in conf.render()


def test_existing_xvfb_screen_is_replaced():
    text = "[program:xvfb]\ncommand=/usr/bin/Xvfb :1 -screen 0 1024x768x16 -nolisten tcp\n"
    conf = SupervisorConfig.parse(text)

    assert conf.force_display_resolution(":1", GEOMETRY) is True
    assert conf.get("program:xvfb", "command") == f"/usr/bin/Xvfb :1 -screen 0 {GEOMETRY} -nolisten tcp"


def test_xvfb_without_screen_gets_one():
    conf = SupervisorConfig.parse("[program:display]\ncommand=Xvfb :1\n")
    conf.force_display_resolution(":1", GEOMETRY)
    assert conf.get("program:display", "command") == f"Xvfb :1 -screen 0 {GEOMETRY}"
    assert "program:xvfb" not in conf.sections()


def test_missing_config_gets_sections():
    conf = configured("")
    text = conf.render()
    assert text == (
        f"[program:xvfb]\ncommand=Xvfb :1 -screen 0 {GEOMETRY}\n\n"
        f"[program:x11vnc]\ncommand={VNC}\n"
    )


def test_forcing_is_idempotent():
    once = configured(IMAGE_SUPERVISORD_CONF).render()
    again = SupervisorConfig.parse(once)

    assert again.force_display_resolution(":1", GEOMETRY) is False
    assert again.force_account("root", "/root") is False
    assert again.force_program_command("x11vnc", VNC) is False
    assert again.render() == once


def test_set_inserts_before_trailing_blank_lines():
    conf = SupervisorConfig.parse("[program:a]\ncommand=a\n\n[program:b]\ncommand=b\n")
    assert conf.set("program:a", "user", "root") is True
    assert conf.render() == "[program:a]\ncommand=a\nuser=root\n\n[program:b]\ncommand=b\n"


def test_split_environment_respects_quotes():
    assert split_environment('A="1,2",B=\'x\', C=3') == ['A="1,2"', "B='x'", "C=3"]
    assert split_environment("") == []
