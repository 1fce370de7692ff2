"""Logging helpers for the workspace cache.

Messages are usually dicts with a "message" key plus structured context, and
are pretty-printed so cache paths, IDs and error records stay readable in a
terminal.
"""

import inspect
import logging
import os
from pprint import pformat
from typing import Any, Optional

from pydantic import BaseModel

LOG_LEVEL_ENV = "NOTION_CLI_LOG_LEVEL"


class PprintLogger:
    """Wraps a stdlib logger so dicts and models can be logged as structured messages.

    Only the levels this package emits are wrapped; anything else (setLevel,
    handlers, name, ...) is delegated to the underlying logger.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @staticmethod
    def _render(msg: Any, pprint: bool) -> str:
        if isinstance(msg, str) or not pprint:
            return str(msg)
        if isinstance(msg, BaseModel):
            # Same camelCase keys as the cache file.
            return msg.model_dump_json(indent=2, by_alias=True)
        return pformat(msg, width=120)

    def _log(self, level: int, msg: Any, args: tuple, pprint: bool, kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        # stacklevel 3 attributes the record to whoever called debug()/info()/...
        self._logger.log(level, self._render(msg, pprint), *args, stacklevel=3, **kwargs)

    def debug(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.DEBUG, msg, args, pprint, kwargs)

    def info(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.INFO, msg, args, pprint, kwargs)

    def warning(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.WARNING, msg, args, pprint, kwargs)

    def error(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.ERROR, msg, args, pprint, kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._logger, name)


def _level_from_env(default: int) -> int:
    value = os.environ.get(LOG_LEVEL_ENV)
    if not value:
        return default
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logging(name: Optional[str] = None, level: int = logging.WARNING) -> PprintLogger:
    """Set up logging and return a PprintLogger instance.

    Args:
        name: Logger name. Defaults to the calling module's ``__name__``.
        level: Fallback level when NOTION_CLI_LOG_LEVEL is not set.

    Returns:
        A PprintLogger wrapping the named stdlib logger.
    """
    if name is None:
        frame = inspect.currentframe().f_back  # type: ignore[union-attr]
        name = frame.f_globals.get("__name__", "workspace_cache")  # type: ignore[union-attr]
    logger = logging.getLogger(name)
    logger.setLevel(_level_from_env(level))
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return PprintLogger(logger)
