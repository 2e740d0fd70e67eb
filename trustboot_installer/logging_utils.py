from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_PATH = "/var/log/trustboot-installer.log"
FALLBACK_LOG_NAME = "trustboot-installer.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(requested: str) -> tuple[logging.FileHandler, str]:
    target = Path(requested)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(target), requested
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Attach the installer's handlers to the root logger.

    Every command and decision goes to ``log_path``. The live environment may
    not allow writing there; in that case a file in the working directory is
    used instead, and the returned path says which one was chosen.

    Calling this again is a no-op that returns the path picked the first time.
    """

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, "_trustboot_configured", False):
        return getattr(root, "_trustboot_log_path", log_path)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    file_handler, actual = _open_log_file(log_path)
    outputs: list[logging.Handler] = [file_handler]
    if also_console:
        outputs.append(logging.StreamHandler())
    for handler in outputs:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root._trustboot_configured = True  # type: ignore[attr-defined]
    root._trustboot_log_path = actual  # type: ignore[attr-defined]
    logging.getLogger(__name__).info("Logging to %s (requested %s)", actual, log_path)
    return actual
