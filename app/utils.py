import logging
import sys

from app.core import config


_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("app")
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``app`` hierarchy, configuring it on first use."""
    _configure_root()
    if name == "__main__" or not name.startswith("app"):
        name = f"app.{name}"
    return logging.getLogger(name)
