from __future__ import annotations

import logging
import re
import zoneinfo
from typing import Callable, Iterable, Optional

from ..errors import ValidationError

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]*$")
HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9-]+$")
MIN_PASSWORD_LENGTH = 8
DEFAULT_TIMEZONE = "Europe/Oslo"


def validate_username(value: str) -> str:
    value = (value or "").strip()
    if not USERNAME_RE.match(value):
        raise ValidationError("Invalid username. Use lowercase letters, numbers, underscore, and hyphen only.")
    return value


def validate_hostname(value: str) -> str:
    value = (value or "").strip()
    if not HOSTNAME_RE.match(value):
        raise ValidationError("Invalid hostname. Use letters, numbers, and hyphens only.")
    return value


def validate_password(value: str, confirmation: Optional[str] = None) -> str:
    if confirmation is not None and value != confirmation:
        raise ValidationError("Passwords do not match.")
    if len(value or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return value


def known_timezones() -> set[str]:
    return set(zoneinfo.available_timezones())


def resolve_timezone(
    value: str,
    *,
    default: str = DEFAULT_TIMEZONE,
    known: Optional[Callable[[], Iterable[str]]] = None,
) -> str:
    """Return ``value`` if it is a known zone, otherwise fall back to ``default``."""

    value = (value or "").strip()
    if value and value in set((known or known_timezones)()):
        return value
    logger.warning("Invalid timezone %r. Using %s as default.", value, default)
    return default
