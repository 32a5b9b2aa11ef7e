"""Rolling, append-only session history.

Stored as a multi-document YAML stream: each finished session appends one
document and earlier documents are never rewritten.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from campaign_keeper.models import SessionHistoryEntry

logger = logging.getLogger(__name__)


class SessionHistory:
    """Reader/appender for ``session-history.yaml``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def entries(self) -> list[SessionHistoryEntry]:
        """All readable entries in append order; unreadable documents are skipped."""
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                documents = list(yaml.safe_load_all(f))
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.error("Failed to read session history %s: %s", self.path, e)
            return []

        entries: list[SessionHistoryEntry] = []
        for document in documents:
            if not isinstance(document, dict):
                continue
            try:
                entries.append(SessionHistoryEntry(**document))
            except ValidationError as e:
                logger.warning("Skipping malformed session history entry: %s", e)
        return entries

    def append(self, entry: SessionHistoryEntry) -> None:
        """Append one entry as a new YAML document.

        Raises:
            OSError: If the history file cannot be written.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = yaml.safe_dump(
            entry.model_dump(mode="json"),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(f"---\n{document}")
        logger.debug("Appended session %s to history", entry.session_id)

    def find(self, session_id: str) -> SessionHistoryEntry | None:
        for entry in reversed(self.entries()):
            if entry.session_id == session_id:
                return entry
        return None

    def count_for_date(self, date: str) -> int:
        """Number of recorded sessions whose id starts with ``date``."""
        return sum(1 for entry in self.entries() if entry.session_id.startswith(f"{date}-"))


__all__ = ["SessionHistory"]
