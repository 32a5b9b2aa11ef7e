"""Split and join location documents: YAML front matter plus narrative prose.

The prose that follows the closing ``---`` delimiter is returned exactly as
stored so that a parse/serialize cycle never alters it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DELIMITER = "---"


class FrontMatterError(Exception):
    """Raised when a document's front matter cannot be parsed.

    Attributes:
        narrative: Prose recovered from the document, usable as a fallback
    """

    def __init__(self, message: str, narrative: str):
        super().__init__(message)
        self.narrative = narrative


@dataclass
class LocationDocument:
    """A location document split into its metadata and its prose."""

    metadata: dict[str, Any]
    narrative: str
    has_front_matter: bool = True


def _opening_length(content: str) -> int:
    """Length of the opening delimiter line, or 0 if there is none."""
    for opening in ("---\n", "---\r\n"):
        if content.startswith(opening):
            return len(opening)
    return 0


def split_document(content: str) -> LocationDocument:
    """Split a document into front matter and narrative.

    A document without an opening delimiter has no metadata and its whole
    content is the narrative.

    Raises:
        FrontMatterError: If the closing delimiter is missing, the YAML is
            invalid, or the front matter is not a mapping.
    """
    start = _opening_length(content)
    if not start:
        return LocationDocument(metadata={}, narrative=content, has_front_matter=False)

    position = start
    closing_start = closing_end = -1
    while position <= len(content):
        newline = content.find("\n", position)
        line_end = len(content) if newline == -1 else newline + 1
        if content[position:line_end].strip() == DELIMITER:
            closing_start, closing_end = position, line_end
            break
        if newline == -1:
            break
        position = line_end

    if closing_start == -1:
        raise FrontMatterError("Missing closing front matter delimiter '---'", narrative=content)

    yaml_text = content[start:closing_start]
    narrative = content[closing_end:]

    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise FrontMatterError(f"Invalid YAML in front matter: {e}", narrative=narrative) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError(
            f"Front matter must be a mapping, got {type(data).__name__}",
            narrative=narrative,
        )

    return LocationDocument(metadata=data, narrative=narrative)


def join_document(metadata: dict[str, Any], narrative: str) -> str:
    """Serialize metadata as front matter (sorted keys) followed by the narrative."""
    yaml_text = yaml.safe_dump(
        metadata,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
        width=float("inf"),
    )
    return f"{DELIMITER}\n{yaml_text}{DELIMITER}\n{narrative}"


__all__ = ["FrontMatterError", "LocationDocument", "split_document", "join_document"]
