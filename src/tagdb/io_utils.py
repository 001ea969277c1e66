"""JSON files for configs and index snapshots, encoded with orjson."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def load_json(path: Path) -> Any:
    return orjson.loads(Path(path).read_bytes())


def save_json(obj: Any, path: Path) -> None:
    """Write *obj* as indented, key-sorted JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(obj, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
