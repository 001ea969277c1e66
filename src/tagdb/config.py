"""Construction-time settings for :class:`tagdb.tag_index.TagIndex`."""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tagdb.io_utils import load_json

ENV_PREFIX = "TAGDB_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class TagIndexConfig:
    """Settings fixed for the lifetime of one index.

    Attributes
    ----------
    max_args:
        Link arity ceiling (number of argument slots per link).
    thread_safe:
        Serialize every public ``TagIndex`` operation behind one lock.
    log_level:
        Optional level name applied to the ``tagdb`` logger.
    """

    max_args: int = 2
    thread_safe: bool = True
    log_level: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.max_args, bool) or not isinstance(self.max_args, int):
            raise ValueError(f"max_args must be an int, got {self.max_args!r}")
        if self.max_args < 1:
            raise ValueError("max_args must be >= 1")
        if self.log_level is not None and not isinstance(
            logging.getLevelName(self.log_level.upper()), int
        ):
            raise ValueError(f"unknown log level: {self.log_level!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TagIndexConfig:
        unknown = set(data) - {"max_args", "thread_safe", "log_level"}
        if unknown:
            raise ValueError(f"unknown config keys: {sorted(unknown)}")
        kwargs: dict[str, Any] = {}
        if "max_args" in data:
            kwargs["max_args"] = _parse_int(data["max_args"], "max_args")
        if "thread_safe" in data:
            kwargs["thread_safe"] = _parse_bool(data["thread_safe"], "thread_safe")
        if data.get("log_level") is not None:
            kwargs["log_level"] = str(data["log_level"])
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TagIndexConfig:
        """Read ``TAGDB_MAX_ARGS``, ``TAGDB_THREAD_SAFE`` and ``TAGDB_LOG_LEVEL``."""
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for key in ("max_args", "thread_safe", "log_level"):
            raw = env.get(ENV_PREFIX + key.upper(), "").strip()
            if raw:
                data[key] = raw
        return cls.from_mapping(data)

    def apply_logging(self) -> None:
        if self.log_level is not None:
            logging.getLogger("tagdb").setLevel(self.log_level.upper())


def load_config(path: Path | str) -> TagIndexConfig:
    """Load a :class:`TagIndexConfig` from a JSON object file."""
    data = load_json(Path(path))
    if not isinstance(data, dict):
        raise ValueError(f"config file must hold a JSON object: {path}")
    return TagIndexConfig.from_mapping(data)


def _parse_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an int, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an int, got {value!r}") from None


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")
