from __future__ import annotations

import logging

from nutriu.config import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """Configura el logger raíz una sola vez (API y CLI)."""
    root = logging.getLogger()
    root.setLevel(level or LOG_LEVEL)
    if any(getattr(h, "_nutriu", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._nutriu = True  # type: ignore[attr-defined]
    root.addHandler(handler)
