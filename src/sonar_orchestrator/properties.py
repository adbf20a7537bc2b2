"""Minimal reader/writer for Java ``.properties`` files."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from pathlib import Path


def _escape(text: str, is_key: bool) -> str:
    out = []
    for i, ch in enumerate(text):
        if ch == "\\":
            out.append("\\\\")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ch in "=:#!" and is_key:
            out.append("\\" + ch)
        elif ch == " " and (is_key or i == 0):
            out.append("\\ ")
        else:
            out.append(ch)
    return "".join(out)


def store_properties(path: Path, props: Mapping[str, str], comment: str | None = None) -> None:
    """Write *props* to *path*, sorted by key."""
    lines = []
    if comment:
        lines.append(f"#{comment}")
    lines.append(f"#{datetime.now().strftime('%a %b %d %H:%M:%S %Y')}")
    for key in sorted(props):
        lines.append(f"{_escape(key, True)}={_escape(str(props[key]), False)}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


_UNESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


def _unescape(text: str) -> str:
    out = []
    it = iter(text)
    for ch in it:
        if ch == "\\":
            nxt = next(it, "")
            out.append(_UNESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


def _split(line: str) -> tuple[str, str]:
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=: ":
            key = line[:i]
            rest = line[i + 1:].lstrip()
            if ch == " " and rest[:1] in ("=", ":"):
                rest = rest[1:].lstrip()
            return key, rest
        i += 1
    return line, ""


def load_properties(path: Path) -> dict[str, str]:
    """Read a ``.properties`` file. Continuation lines are not supported."""
    props: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.lstrip()
        if not line or line[0] in "#!":
            continue
        key, value = _split(line)
        props[_unescape(key)] = _unescape(value)
    return props
