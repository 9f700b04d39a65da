"""
In-memory model of a supervisord configuration file.

The file is parsed into sections of ``key=value`` entries while keeping
comments, blank lines and continuation lines, so untouched lines render back
byte for byte. Only entries changed through ``set`` are re-rendered, always
as ``key=value``.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

_SCREEN_RE = re.compile(r"-screen\s+0\s+\S+")
_XVFB_RE = re.compile(r"(^|[\s/])Xvfb(\s|$)")


@dataclass
class _Entry:
    key: str
    value: str
    raw: Optional[List[str]] = None  # original lines; None once modified

    def lines(self) -> List[str]:
        if self.raw is not None:
            return self.raw
        return [f"{self.key}={self.value}"]


@dataclass
class _Section:
    name: str
    header: str
    items: List[Union[_Entry, str]] = field(default_factory=list)

    def entry(self, key: str) -> Optional[_Entry]:
        for item in self.items:
            if isinstance(item, _Entry) and item.key == key:
                return item
        return None


def split_environment(value: str) -> List[str]:
    """Split a supervisord ``environment=`` value on commas outside quotes."""
    pairs, buf, quote = [], "", None
    for ch in value:
        if quote:
            buf += ch
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
            buf += ch
        elif ch == ",":
            pairs.append(buf.strip())
            buf = ""
        else:
            buf += ch
    if buf.strip():
        pairs.append(buf.strip())
    return pairs


class SupervisorConfig:
    def __init__(self):
        self.preamble: List[str] = []
        self._sections: List[_Section] = []
        self._trailing_newline = True

    @classmethod
    def parse(cls, text: str) -> "SupervisorConfig":
        conf = cls()
        conf._trailing_newline = text.endswith("\n") or not text
        current: Optional[_Section] = None
        last_entry: Optional[_Entry] = None
        for line in text.splitlines():
            stripped = line.strip()
            target = current.items if current else conf.preamble
            if stripped.startswith("[") and stripped.endswith("]"):
                current = _Section(stripped[1:-1].strip(), line)
                conf._sections.append(current)
                last_entry = None
            elif stripped and line[0] in " \t" and last_entry is not None:
                last_entry.raw.append(line)
                last_entry.value = f"{last_entry.value}\n{stripped}"
            elif not stripped or stripped[0] in "#;" or "=" not in line or current is None:
                target.append(line)
                last_entry = None
            else:
                key, _, value = line.partition("=")
                last_entry = _Entry(key.strip(), value.strip(), [line])
                current.items.append(last_entry)
        return conf

    def render(self) -> str:
        lines = list(self.preamble)
        for section in self._sections:
            lines.append(section.header)
            for item in section.items:
                lines.extend(item.lines() if isinstance(item, _Entry) else [item])
        text = "\n".join(lines)
        if self._trailing_newline and lines:
            text += "\n"
        return text

    def sections(self) -> List[str]:
        return [s.name for s in self._sections]

    def programs(self) -> List[str]:
        return [s.name[len("program:"):] for s in self._sections if s.name.startswith("program:")]

    def _section(self, name: str) -> Optional[_Section]:
        for section in self._sections:
            if section.name == name:
                return section
        return None

    def get(self, section: str, key: str) -> Optional[str]:
        sec = self._section(section)
        if sec is None:
            return None
        entry = sec.entry(key)
        return entry.value if entry else None

    def set(self, section: str, key: str, value: str) -> bool:
        """Set ``key`` in ``section``, creating either when missing. Returns True if anything changed."""
        sec = self._section(section)
        if sec is None:
            if self._sections or self.preamble:
                last = self._sections[-1].items if self._sections else self.preamble
                if not last or last[-1] != "":
                    last.append("")
            sec = _Section(section, f"[{section}]")
            self._sections.append(sec)

        entry = sec.entry(key)
        if entry is not None:
            if entry.value == value:
                return False
            entry.value = value
            entry.raw = None
            return True

        # insert after the last entry so trailing blank lines stay trailing
        index = len(sec.items)
        while index > 0 and not isinstance(sec.items[index - 1], _Entry):
            index -= 1
        sec.items.insert(index, _Entry(key, value))
        return True

    def force_display_resolution(self, display: str, geometry: str) -> bool:
        """Force ``-screen 0 <geometry>`` on every Xvfb program, adding one if none exists."""
        changed = False
        found = False
        for program in self.programs():
            section = f"program:{program}"
            command = self.get(section, "command")
            if not command or not _XVFB_RE.search(command):
                continue
            found = True
            screen = f"-screen 0 {geometry}"
            if _SCREEN_RE.search(command):
                command = _SCREEN_RE.sub(screen, command, count=1)
            else:
                command = f"{command} {screen}"
            changed |= self.set(section, "command", command)
        if not found:
            changed |= self.set("program:xvfb", "command", f"Xvfb {display} -screen 0 {geometry}")
        return changed

    def force_account(self, user: str, home: str) -> bool:
        """Run every program as ``user`` and point HOME/USER in its environment at the account."""
        overrides: Dict[str, str] = {"HOME": home, "USER": user}
        changed = False
        for section in list(self._sections):
            if section.entry("user") is not None:
                changed |= self.set(section.name, "user", user)
            env = section.entry("environment")
            if env is None:
                continue
            pairs = split_environment(env.value)
            forced = []
            for pair in pairs:
                name = pair.partition("=")[0].strip()
                if name in overrides:
                    pair = f'{name}="{overrides[name]}"'
                forced.append(pair)
            if forced != pairs:
                changed |= self.set(section.name, "environment", ",".join(forced))
        return changed

    def force_program_command(self, program: str, command: str) -> bool:
        return self.set(f"program:{program}", "command", command)
