"""
Store options.

Timeouts are per statement category and applied on every call; pool
settings bound how many connections a store may hold.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120


@dataclass
class StoreOptions:
    """Options for customizing the default behaviour of a store."""
    select_timeout: int = DEFAULT_TIMEOUT_SECONDS
    delete_timeout: int = DEFAULT_TIMEOUT_SECONDS
    insert_timeout: int = DEFAULT_TIMEOUT_SECONDS
    pool_size: int = 1
    pool_timeout: float = 30.0

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any option is out of range."""
        for name in ("select_timeout", "delete_timeout", "insert_timeout"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.pool_size, int) or self.pool_size < 1:
            raise ValueError(f"pool_size must be at least 1, got {self.pool_size!r}")
        if self.pool_timeout <= 0:
            raise ValueError(f"pool_timeout must be positive, got {self.pool_timeout!r}")

    def timeouts(self) -> Dict[str, int]:
        return {
            "select": self.select_timeout,
            "insert": self.insert_timeout,
            "delete": self.delete_timeout,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "select_timeout": self.select_timeout,
            "delete_timeout": self.delete_timeout,
            "insert_timeout": self.insert_timeout,
            "pool_size": self.pool_size,
            "pool_timeout": self.pool_timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreOptions":
        unknown = set(data) - set(cls().to_dict())
        if unknown:
            logger.warning(f"Ignoring unknown store options: {sorted(unknown)}")
        return cls(
            select_timeout=data.get("select_timeout", DEFAULT_TIMEOUT_SECONDS),
            delete_timeout=data.get("delete_timeout", DEFAULT_TIMEOUT_SECONDS),
            insert_timeout=data.get("insert_timeout", DEFAULT_TIMEOUT_SECONDS),
            pool_size=data.get("pool_size", 1),
            pool_timeout=data.get("pool_timeout", 30.0),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "StoreOptions":
        """Load options from a JSON or YAML file."""
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Store options in {path} must be a mapping")
        return cls.from_dict(data)
