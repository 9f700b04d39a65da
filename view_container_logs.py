#!/usr/bin/env python3
"""Utility script to inspect log files inside the running desktop container."""

from __future__ import annotations

import argparse
import shlex
import subprocess
import sys
from typing import List, Optional

from desktop_config import DesktopConfig

DEFAULT_LOG_DIR = "/var/log/supervisor"


def build_parser() -> argparse.ArgumentParser:
    defaults = DesktopConfig()
    parser = argparse.ArgumentParser(
        description=
        "Print log file contents from the desktop container using the docker CLI.",
    )
    parser.add_argument(
        "container",
        nargs="?",
        default=defaults.container_name,
        help=f"Name of the container to inspect (default: {defaults.container_name}).",
    )
    parser.add_argument(
        "--path",
        default=f"{DEFAULT_LOG_DIR}/supervisord.log",
        help="Absolute path of the log file inside the container (default: /var/log/supervisor/supervisord.log).",
    )
    parser.add_argument(
        "--lines",
        type=int,
        default=200,
        help="Number of trailing lines to display (default: 200).",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available *.log files in the log directory instead of printing a specific file.",
    )
    parser.add_argument(
        "--log-dir",
        default=DEFAULT_LOG_DIR,
        help="Directory inside the container to search when using --list (default: /var/log/supervisor).",
    )
    parser.add_argument(
        "--engine-logs",
        action="store_true",
        help="Show the container's own output (docker logs) instead of a file.",
    )
    parser.add_argument(
        "--sudo",
        action="store_true",
        help="Prefix docker commands with sudo.",
    )
    parser.add_argument(
        "--exec",
        dest="exec_cmd",
        help="Run an arbitrary shell command inside the container instead of reading logs.",
    )
    return parser


def docker(args: List[str], sudo: bool = False) -> str:
    argv = (["sudo"] if sudo else []) + ["docker"] + args
    try:
        result = subprocess.run(argv, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RuntimeError("docker CLI not found on PATH") from exc

    if result.returncode != 0:
        raise RuntimeError(
            f"Command exited with {result.returncode}: {result.stderr.strip() or 'no stderr available'}",
        )
    return result.stdout + result.stderr


def run_command(container: str, command: str, sudo: bool = False) -> str:
    return docker(["exec", container, "bash", "-c", command], sudo=sudo)


def list_logs(container: str, log_dir: str, sudo: bool = False) -> str:
    escaped_dir = shlex.quote(log_dir)
    output = run_command(container, f"ls -1 {escaped_dir}/*.log 2>/dev/null || true", sudo=sudo)
    return output.strip() or "<no log files found>"


def tail_log(container: str, path: str, lines: int, sudo: bool = False) -> str:
    escaped_path = shlex.quote(path)
    cmd = (
        f"if [ ! -f {escaped_path} ]; then echo "
        f"\"Log file not found: {escaped_path}\" >&2; exit 1; fi; "
        f"tail -n {int(lines)} {escaped_path}"
    )
    try:
        return run_command(container, cmd, sudo=sudo)
    except RuntimeError as exc:
        message = str(exc)
        if "Log file not found" in message:
            hint = (
                "Log file not found. Use --list to see available logs or "
                "specify the correct path with --path."
            )
            raise RuntimeError(f"{message}\n{hint}") from exc
        raise


def engine_logs(container: str, lines: int, sudo: bool = False) -> str:
    return docker(["logs", "--tail", str(int(lines)), container], sudo=sudo)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.exec_cmd:
            output = run_command(args.container, args.exec_cmd, sudo=args.sudo)
        elif args.engine_logs:
            output = engine_logs(args.container, args.lines, sudo=args.sudo)
        elif args.list:
            output = list_logs(args.container, args.log_dir, sudo=args.sudo)
        else:
            output = tail_log(args.container, args.path, args.lines, sudo=args.sudo)
    except RuntimeError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1

    sys.stdout.write(output)
    if not output.endswith("\n"):
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
