from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Union

ToggleValue = Union[bool, int, str]


@dataclass(frozen=True)
class ConfigStanza:
    """
    A self-contained block of backend config text.

    `marker` is a substring unique to the block (its table header); the block
    counts as present whenever the marker appears in the file.
    """

    marker: str
    text: str

    def present_in(self, content: str) -> bool:
        return self.marker in content


@dataclass(frozen=True)
class ToggleDirective:
    section: str
    key: str
    value: ToggleValue

    def render(self) -> str:
        return f"{self.key} = {format_toml_value(self.value)}"


def format_toml_value(value: ToggleValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return json.dumps(value)


def runtime_table_stanza(table: str, key: str, value: ToggleValue) -> ConfigStanza:
    header = f"[{table}]"
    return ConfigStanza(marker=header, text=f"{header}\n  {key} = {format_toml_value(value)}\n")


def append_missing_stanzas(content: str, stanzas: List[ConfigStanza]) -> str:
    """Append every stanza whose marker is not already in content."""
    nl = _newline_of(content)
    out = content
    for stanza in stanzas:
        if stanza.present_in(out):
            continue
        if out and not out.endswith("\n"):
            out += nl
        if out:
            out += nl
        out += stanza.text.replace("\n", nl)
    return out


def _key_line_re(key: str) -> "re.Pattern[str]":
    return re.compile(r"^(?P<indent>[ \t]*)" + re.escape(key) + r"[ \t]*=")


def _section_header_re(section: str) -> "re.Pattern[str]":
    return re.compile(r"^[ \t]*\[[ \t]*" + re.escape(section) + r"[ \t]*\][ \t]*(#.*)?$")


def find_toggle_value(content: str, directive: ToggleDirective) -> Optional[str]:
    key_re = _key_line_re(directive.key)
    for line in content.splitlines():
        m = key_re.match(line)
        if m:
            return line[m.end():].split("#", 1)[0].strip()
    return None


def _line_ending(line: str) -> str:
    return line[len(line.rstrip("\r\n")):]


def _newline_of(content: str) -> str:
    first = content.splitlines(keepends=True)[:1]
    return (_line_ending(first[0]) or "\n") if first else "\n"


def apply_toggle(content: str, directive: ToggleDirective) -> str:
    """
    Insert-or-replace a single `key = value` line.

    - If an uncommented `key =` line exists anywhere, the first one is rewritten
      in place (indent and line terminator kept) and any further ones are dropped.
    - Otherwise the line goes right after the `[section]` header.
    - Without a header, `[section]` plus the line is appended at the end.

    New lines use the file's own line terminator (taken from its first line).
    """
    lines = content.splitlines(keepends=True)
    key_re = _key_line_re(directive.key)
    rendered = directive.render()
    nl = _newline_of(content)

    out: List[str] = []
    replaced = False
    for line in lines:
        m = key_re.match(line)
        if m is None:
            out.append(line)
            continue
        if replaced:
            continue
        out.append(m.group("indent") + rendered + _line_ending(line))
        replaced = True
    if replaced:
        return "".join(out)

    header_re = _section_header_re(directive.section)
    for i, line in enumerate(out):
        if header_re.match(line.rstrip("\r\n")):
            eol = _line_ending(line)
            if not eol:
                out[i] = line + nl
            out.insert(i + 1, rendered + (eol or nl))
            return "".join(out)

    tail = "".join(out)
    if tail and not tail.endswith("\n"):
        tail += nl
    if tail:
        tail += nl
    return tail + f"[{directive.section}]{nl}{rendered}{nl}"
