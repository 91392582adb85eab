from __future__ import annotations

import logging


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(app) -> None:
    """Root handler with a timestamped format at LOG_LEVEL; Flask's app.logger propagates to it."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    root = logging.getLogger()
    if not any(getattr(h, "_shoppos", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._shoppos = True
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)
