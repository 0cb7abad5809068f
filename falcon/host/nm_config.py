"""Patching of NetworkManager.conf.

NetworkManager.conf is an INI-style keyfile. falcon only ever adds or
removes a single ``dns=dnsmasq`` line inside ``[main]``, so rather than
round-tripping the file through a config parser (which would drop comments
and reorder keys) the file is treated as lines: the ``[main]`` header is the
anchor, and the directive is inserted right after it or removed wherever it
appears in that section. Everything else is left byte-for-byte untouched.
"""

from __future__ import annotations

import re

from falcon.errors import MissingSectionError

MAIN_SECTION = "main"
DNSMASQ_DIRECTIVE = "dns=dnsmasq"

_SECTION_RE = re.compile(r"^\s*\[([^\]]+)\]\s*$")


def _section_of_each_line(lines: list[str]) -> list[str | None]:
    """Return the enclosing section name for each line (None before any header)."""
    sections: list[str | None] = []
    current: str | None = None
    for line in lines:
        match = _SECTION_RE.match(line)
        if match:
            current = match.group(1).strip()
            sections.append(None)  # Header lines belong to no section body
            continue
        sections.append(current)
    return sections


def _is_directive(line: str, directive: str) -> bool:
    return line.strip() == directive


def has_directive(text: str, directive: str = DNSMASQ_DIRECTIVE) -> bool:
    """Whether ``directive`` is set inside the ``[main]`` section."""
    lines = text.splitlines(keepends=True)
    return any(
        section == MAIN_SECTION and _is_directive(line, directive)
        for line, section in zip(lines, _section_of_each_line(lines))
    )


def conflicting_settings(text: str, directive: str = DNSMASQ_DIRECTIVE) -> list[str]:
    """Other assignments in ``[main]`` to the key ``directive`` sets.

    NetworkManager keeps the last value of a repeated key, so any of these
    override the inserted directive.
    """
    key, _, wanted = directive.partition("=")
    lines = text.splitlines()
    conflicts = []
    for line, section in zip(lines, _section_of_each_line(lines)):
        if section != MAIN_SECTION:
            continue
        name, sep, value = line.partition("=")
        if sep and name.strip() == key.strip() and value.strip() != wanted.strip():
            conflicts.append(line.strip())
    return conflicts


def add_directive(text: str, path: str, directive: str = DNSMASQ_DIRECTIVE) -> str:
    """Return ``text`` with ``directive`` inserted right after the ``[main]`` header.

    Unchanged if the directive is already present.

    Raises:
        MissingSectionError: the file has no ``[main]`` section
    """
    if has_directive(text, directive):
        return text

    lines = text.splitlines(keepends=True)
    for index, line in enumerate(lines):
        match = _SECTION_RE.match(line)
        if match and match.group(1).strip() == MAIN_SECTION:
            if line.endswith("\n"):
                lines.insert(index + 1, f"{directive}\n")
            else:
                # Header is the last line with no trailing newline
                lines.insert(index + 1, f"\n{directive}")
            return "".join(lines)

    raise MissingSectionError(path, f"[{MAIN_SECTION}]")


def remove_directive(text: str, directive: str = DNSMASQ_DIRECTIVE) -> str:
    """Return ``text`` with every ``directive`` line in ``[main]`` removed."""
    lines = text.splitlines(keepends=True)
    sections = _section_of_each_line(lines)
    kept: list[str] = []
    for line, section in zip(lines, sections):
        if section == MAIN_SECTION and _is_directive(line, directive):
            if not line.endswith("\n") and kept and kept[-1].endswith("\n"):
                # Dropping the final line: drop the newline that introduced it
                kept[-1] = kept[-1][:-1]
            continue
        kept.append(line)
    return "".join(kept)
