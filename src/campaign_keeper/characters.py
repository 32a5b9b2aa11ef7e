"""Read-only access to character files.

Character sheets are owned by the rules engine; the persistence engine
only reads the handful of fields it needs for progression deltas.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from campaign_keeper.exceptions import CharacterFileError

logger = logging.getLogger(__name__)


@dataclass
class CharacterRecord:
    """The fields of a character file the engine cares about."""

    name: str = "Unknown"
    level: int = 1
    experience: int = 0
    inventory: list[Any] = field(default_factory=list)
    content_hash: str = ""

    def loot_lines(self) -> list[str]:
        """Current inventory as display lines (``name xN`` for stacks)."""
        lines: list[str] = []
        for item in self.inventory:
            if isinstance(item, str):
                lines.append(item)
            elif isinstance(item, dict) and item.get("name"):
                quantity = item.get("quantity", 1)
                suffix = f" x{quantity}" if isinstance(quantity, int) and quantity > 1 else ""
                lines.append(f"{item['name']}{suffix}")
            else:
                lines.append("Unknown item")
        return lines


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def read_character(path: Path) -> CharacterRecord:
    """Load a character YAML file.

    Raises:
        CharacterFileError: If the file is missing, unreadable or not a mapping.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CharacterFileError(f"Failed to load character file: {e}", details={"path": str(path)}) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise CharacterFileError(f"Invalid YAML in character file: {e}", details={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise CharacterFileError(
            f"Character file must be a mapping, got {type(data).__name__}",
            details={"path": str(path)},
        )

    inventory = data.get("inventory")
    return CharacterRecord(
        name=str(data.get("name") or "Unknown"),
        level=_as_int(data.get("level"), 1) or 1,
        experience=_as_int(data.get("experience"), 0),
        inventory=inventory if isinstance(inventory, list) else [],
        content_hash=hashlib.md5(content.encode("utf-8")).hexdigest(),
    )


__all__ = ["CharacterRecord", "read_character"]
