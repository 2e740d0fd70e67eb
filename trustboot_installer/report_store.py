"""Run report persistence.

The report is written as YAML when the path ends in ``.yaml``/``.yml`` and as
JSON otherwise. Callers are responsible for keeping secrets out of it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

YAML_SUFFIXES = (".yaml", ".yml")


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in YAML_SUFFIXES


def load_report(path: str) -> Dict[str, Any]:
    source = Path(path)
    if not source.is_file():
        return {}

    text = source.read_text(encoding="utf-8")
    loaded = (yaml.safe_load(text) if _is_yaml(source) else json.loads(text)) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"{source}: run report must be a mapping, got {type(loaded).__name__}")
    return loaded


def save_report(path: str, report: Dict[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if _is_yaml(target):
        body = yaml.safe_dump(report, sort_keys=False)
    else:
        body = json.dumps(report, indent=2, sort_keys=True) + "\n"
    target.write_text(body, encoding="utf-8")
    logger.info("Run report written to %s", target)
