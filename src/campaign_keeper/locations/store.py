"""
Location State Store.

Each location directory holds a ``State.md`` document whose YAML front
matter carries the structured state (visited flag, discovered items,
completed events, NPC and custom state) and whose body is free-form
narrative. Reads degrade to the default state; writes merge partial
changes and always carry the narrative through untouched.
"""

from __future__ import annotations

import logging
import ntpath
import posixpath
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from campaign_keeper.exceptions import (
    InvalidLocationIdError,
    KeeperError,
    LocationNotFoundError,
    StateError,
)
from campaign_keeper.locations.frontmatter import (
    FrontMatterError,
    join_document,
    split_document,
)
from campaign_keeper.models import LocationState
from campaign_keeper.results import OperationResult

logger = logging.getLogger(__name__)

STATE_FILENAME = "State.md"
DEFAULT_NARRATIVE = "# Location State\n\nThis location has been visited.\n"

# Fields merged as map unions; every other supplied field replaces wholesale.
MAP_FIELDS = ("npc_states", "custom_state")
# List fields with set semantics.
SET_FIELDS = ("discovered_items", "completed_events")


def is_valid_location_id(location_id: Any) -> bool:
    """Reject ids that could resolve outside the locations directory."""
    if not isinstance(location_id, str) or not location_id.strip():
        return False
    if "../" in location_id or "..\\" in location_id:
        return False
    if posixpath.isabs(location_id) or ntpath.isabs(location_id):
        return False
    if ntpath.splitdrive(location_id)[0]:
        return False
    parts = location_id.replace("\\", "/").split("/")
    return ".." not in parts


def _unique(values: list[Any]) -> list[Any]:
    seen: list[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _coerce_state(raw: dict[str, Any]) -> LocationState:
    """Build a LocationState from parsed front matter, field by field.

    Fields with the wrong shape fall back to their defaults instead of
    invalidating the whole record; unknown keys are ignored.
    """
    values: dict[str, Any] = {}
    if isinstance(raw.get("visited"), bool):
        values["visited"] = raw["visited"]
    for name in SET_FIELDS:
        if isinstance(raw.get(name), list):
            values[name] = _unique([str(v) for v in raw[name]])
    for name in MAP_FIELDS:
        if isinstance(raw.get(name), dict):
            # YAML allows non-string keys (e.g. ``7: x``); state keys are strings.
            values[name] = {str(key): value for key, value in raw[name].items()}
    if raw.get("last_updated") is not None:
        values["last_updated"] = raw["last_updated"]

    try:
        return LocationState(**values)
    except ValidationError as e:
        bad_fields = sorted({str(error["loc"][0]) for error in e.errors() if error["loc"]})
        logger.warning("Discarding malformed location state fields %s: %s", bad_fields, e)
        for name in bad_fields:
            values.pop(name, None)

    try:
        return LocationState(**values)
    except ValidationError as e:
        logger.warning("Discarding malformed location state: %s", e)
        return LocationState()


class LocationStateStore:
    """Read-modify-write access to per-location state documents."""

    def __init__(self, locations_dir: Path) -> None:
        """
        Args:
            locations_dir: Directory containing one sub-directory per location
        """
        self.locations_dir = Path(locations_dir)

    def state_path(self, location_id: str) -> Path:
        """Path of a location's state document (id must be pre-validated)."""
        return self.locations_dir / location_id / STATE_FILENAME

    def _read(self, location_id: str) -> tuple[LocationState, str | None]:
        """Read state and narrative; narrative is None when the file is absent.

        Raises:
            StateError: If the file exists but cannot be read or decoded.
        """
        path = self.state_path(location_id)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LocationState(), None
        except (OSError, UnicodeDecodeError) as e:
            raise StateError(
                f"Cannot read {STATE_FILENAME} for {location_id}: {e}",
                details={"location_id": location_id},
            ) from e

        try:
            document = split_document(content)
        except FrontMatterError as e:
            logger.warning("Malformed front matter in %s for %s: %s", STATE_FILENAME, location_id, e)
            return LocationState(), e.narrative

        return _coerce_state(document.metadata), document.narrative

    # --- Reads ---

    async def load_state(self, location_id: str) -> LocationState:
        """Load a location's state, falling back to defaults on any problem."""
        if not is_valid_location_id(location_id):
            logger.warning("Invalid location ID: %r", location_id)
            return LocationState()

        try:
            state, _ = self._read(location_id)
        except StateError as e:
            logger.warning("%s; using default state", e.message)
            return LocationState()
        return state

    # --- Writes ---

    async def update_state(
        self, location_id: str, changes: dict[str, Any] | LocationState
    ) -> OperationResult:
        """Merge partial changes into a location's state and persist it.

        ``npc_states`` and ``custom_state`` are merged as map unions; any
        other supplied field replaces the stored value. ``last_updated`` is
        always stamped. The narrative body is rewritten unchanged.
        """
        try:
            state = self._merge_and_write(location_id, changes)
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            logger.error("Failed to write state for %s: %s", location_id, e)
            return OperationResult.fail(f"Failed to update state for {location_id}: {e}")
        except (ValueError, yaml.YAMLError) as e:
            logger.error("Could not serialize state for %s: %s", location_id, e)
            return OperationResult.fail(f"Failed to update state for {location_id}: {e}")
        return OperationResult.ok(state)

    def _merge_and_write(
        self, location_id: str, changes: dict[str, Any] | LocationState
    ) -> LocationState:
        if not is_valid_location_id(location_id):
            raise InvalidLocationIdError(location_id)

        if isinstance(changes, LocationState):
            changes = changes.model_dump(exclude_unset=True)
        unknown = set(changes) - set(LocationState.model_fields)
        if unknown:
            raise StateError(
                f"Unknown location state fields: {', '.join(sorted(unknown))}",
                details={"location_id": location_id},
            )

        location_dir = self.locations_dir / location_id
        if not location_dir.is_dir():
            raise LocationNotFoundError(location_id)

        current, narrative = self._read(location_id)
        if narrative is None:
            narrative = DEFAULT_NARRATIVE

        merged = current.model_dump()
        for key, value in changes.items():
            if key in MAP_FIELDS and value is not None and not isinstance(value, Mapping):
                raise StateError(
                    f"{key} must be a mapping, got {type(value).__name__}",
                    details={"location_id": location_id},
                )
            if key in SET_FIELDS and value is not None and not isinstance(value, (list, tuple, set)):
                raise StateError(
                    f"{key} must be a list, got {type(value).__name__}",
                    details={"location_id": location_id},
                )
            if key in MAP_FIELDS:
                merged[key] = {**merged[key], **(value or {})}
            elif key in SET_FIELDS:
                merged[key] = _unique(list(value or []))
            else:
                merged[key] = value
        merged["last_updated"] = datetime.now()

        try:
            state = LocationState(**merged)
        except ValidationError as e:
            raise StateError(
                f"Invalid state for {location_id}: {e}",
                details={"location_id": location_id},
            ) from e

        path = self.state_path(location_id)
        path.write_text(join_document(state.model_dump(mode="json"), narrative), encoding="utf-8")
        logger.debug("Updated state for %s: %s", location_id, sorted(changes))
        return state

    # --- Idempotent convenience wrappers ---

    async def _apply_if_changed(
        self, location_id: str, changes: dict[str, Any] | None
    ) -> OperationResult:
        if changes is None:
            return OperationResult.ok({"changed": False})
        result = await self.update_state(location_id, changes)
        if result.success:
            result.data = {"changed": True, "state": result.data}
        return result

    async def mark_visited(self, location_id: str) -> OperationResult:
        """Set ``visited`` to true, writing only when it is not already set."""
        state = await self.load_state(location_id)
        return await self._apply_if_changed(
            location_id, None if state.visited else {"visited": True}
        )

    async def add_discovered_item(self, location_id: str, item_id: str) -> OperationResult:
        """Add an item to ``discovered_items`` (no duplicates)."""
        state = await self.load_state(location_id)
        if item_id in state.discovered_items:
            return await self._apply_if_changed(location_id, None)
        return await self._apply_if_changed(
            location_id, {"discovered_items": [*state.discovered_items, item_id]}
        )

    async def complete_event(self, location_id: str, event_id: str) -> OperationResult:
        """Add an event to ``completed_events`` (no duplicates)."""
        state = await self.load_state(location_id)
        if event_id in state.completed_events:
            return await self._apply_if_changed(location_id, None)
        return await self._apply_if_changed(
            location_id, {"completed_events": [*state.completed_events, event_id]}
        )

    async def update_npc_state(self, location_id: str, npc_id: str, npc_state: Any) -> OperationResult:
        """Set the state stored for one NPC at this location."""
        state = await self.load_state(location_id)
        if npc_id in state.npc_states and state.npc_states[npc_id] == npc_state:
            return await self._apply_if_changed(location_id, None)
        return await self._apply_if_changed(location_id, {"npc_states": {npc_id: npc_state}})

    async def set_custom_state(self, location_id: str, key: str, value: Any) -> OperationResult:
        """Set one custom key/value pair at this location."""
        state = await self.load_state(location_id)
        if key in state.custom_state and state.custom_state[key] == value:
            return await self._apply_if_changed(location_id, None)
        return await self._apply_if_changed(location_id, {"custom_state": {key: value}})


__all__ = ["LocationStateStore", "is_valid_location_id", "STATE_FILENAME"]
