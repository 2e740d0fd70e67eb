"""Standing signing triggers and their ALPM hook text.

A SigningTrigger says *what* gets re-signed and *when*; ``render_hook`` is
the only place that knows how pacman expects that to be written down.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

HEREDOC_MARK = "TRUSTBOOT_EOF"


class TriggerType(str, enum.Enum):
    PATH = "Path"
    PACKAGE = "Package"


class Operation(str, enum.Enum):
    INSTALL = "Install"
    UPGRADE = "Upgrade"
    REMOVE = "Remove"


@dataclass(frozen=True)
class SigningTrigger:
    name: str
    description: str
    targets: Tuple[str, ...]
    action: str
    trigger_type: TriggerType = TriggerType.PATH
    operations: Tuple[Operation, ...] = (Operation.INSTALL, Operation.UPGRADE)
    when: str = "PostTransaction"
    depends: Tuple[str, ...] = field(default_factory=tuple)
    needs_targets: bool = False

    @property
    def filename(self) -> str:
        return f"{self.name}.hook"


def render_hook(trigger: SigningTrigger) -> str:
    if not trigger.targets:
        raise ValueError(f"Trigger {trigger.name} has no targets")
    if not trigger.operations:
        raise ValueError(f"Trigger {trigger.name} has no operations")

    lines = ["[Trigger]"]
    lines += [f"Operation = {op.value}" for op in trigger.operations]
    lines.append(f"Type = {trigger.trigger_type.value}")
    lines += [f"Target = {t}" for t in trigger.targets]
    lines += ["", "[Action]", f"Description = {trigger.description}", f"When = {trigger.when}"]
    lines += [f"Depends = {d}" for d in trigger.depends]
    if trigger.needs_targets:
        lines.append("NeedsTargets")
    lines.append(f"Exec = {trigger.action}")
    return "\n".join(lines) + "\n"


def parse_hook(text: str) -> Dict[str, Dict[str, List[str]]]:
    """Parse hook text into {section: {key: [values]}}.

    Keys may repeat (Operation, Target, Depends), so values are always lists.
    """

    sections: Dict[str, Dict[str, List[str]]] = {}
    current = None
    for n, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("[") and line.endswith("]"):
            current = sections.setdefault(line[1:-1], {})
            continue
        if current is None:
            raise ValueError(f"line {n}: key outside of a section")
        key, sep, value = line.partition("=")
        if not sep:
            # Flag-style keys such as NeedsTargets / AbortOnFail
            current.setdefault(key.strip(), []).append("")
            continue
        current.setdefault(key.strip(), []).append(value.strip())
    return sections


def install_file_lines(path: str, body: str, mode: str = "644") -> List[str]:
    """Shell lines that write ``body`` to ``path`` inside the target."""

    return [
        f"install -d -m 755 \"$(dirname '{path}')\"",
        f"cat > '{path}' <<'{HEREDOC_MARK}'",
        body.rstrip("\n"),
        HEREDOC_MARK,
        f"chmod {mode} '{path}'",
    ]
