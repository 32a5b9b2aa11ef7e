"""
Session Snapshot Manager.

Owns the durable projection of the single active session. The snapshot
file's presence is the "session active" flag, so the single-session rule
survives process restarts. Every read-modify-write of the snapshot
(manual updates, autosave ticks, session end) runs under one asyncio lock.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel, ValidationError

from campaign_keeper.characters import read_character
from campaign_keeper.checkpoint.git import GitCheckpoints
from campaign_keeper.config import KeeperConfig
from campaign_keeper.exceptions import (
    InvalidLocationIdError,
    KeeperError,
    LocationNotFoundError,
    NoActiveSessionError,
    SessionActiveError,
    SessionError,
)
from campaign_keeper.locations.store import LocationStateStore, is_valid_location_id
from campaign_keeper.models import (
    CalendarSnapshot,
    CharacterRef,
    EndSessionResult,
    LocationTracking,
    LocationVisit,
    NPCInteraction,
    SessionHistoryEntry,
    SessionSnapshot,
)
from campaign_keeper.results import OperationResult
from campaign_keeper.session.autosave import AutoSaveTask
from campaign_keeper.session.history import SessionHistory
from campaign_keeper.session.log_compiler import DEFAULT_SUMMARY, SessionLogCompiler

logger = logging.getLogger(__name__)

REQUIRED_SNAPSHOT_KEYS = ("session_id", "character", "location")


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``source`` into a copy of ``target``.

    Nested mappings merge key by key; scalars and lists replace wholesale.
    """
    merged = dict(target)
    for key, value in source.items():
        if isinstance(value, BaseModel):
            value = value.model_dump(exclude_unset=True)
        if isinstance(value, Mapping):
            existing = merged.get(key)
            merged[key] = deep_merge(existing if isinstance(existing, Mapping) else {}, value)
        else:
            merged[key] = value
    return merged


class SessionSnapshotManager:
    """Start, update and end the active session; autosave in between."""

    def __init__(
        self,
        config: KeeperConfig,
        state_store: LocationStateStore | None = None,
        log_compiler: SessionLogCompiler | None = None,
        checkpoints: GitCheckpoints | None = None,
        history: SessionHistory | None = None,
    ) -> None:
        self.config = config
        self.state_store = state_store
        self.log_compiler = log_compiler or SessionLogCompiler(config)
        self.checkpoints = checkpoints
        self.history = history or SessionHistory(config.history_file)
        self._lock = asyncio.Lock()
        self._autosave: AutoSaveTask | None = None

    # ------------------------------------------------------------------
    # Snapshot file
    # ------------------------------------------------------------------

    @property
    def snapshot_file(self):
        return self.config.snapshot_file

    @property
    def is_active(self) -> bool:
        """Whether a snapshot file exists (even an unreadable one)."""
        return self.snapshot_file.exists()

    def _read_snapshot(self) -> SessionSnapshot | None:
        path = self.snapshot_file
        if not path.exists():
            return None

        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            logger.error("Error reading session file %s: %s", path, e)
            return None
        except (UnicodeDecodeError, yaml.YAMLError) as e:
            logger.error(
                "Corrupted session file %s: %s. End or abandon the session to recover.", path, e
            )
            return None

        if not isinstance(data, dict) or any(key not in data for key in REQUIRED_SNAPSHOT_KEYS):
            logger.error("Invalid session state in %s: missing required fields", path)
            return None

        try:
            return SessionSnapshot.model_validate(data)
        except ValidationError as e:
            logger.error("Invalid session state in %s: %s", path, e)
            return None

    def _write_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Write the snapshot atomically (temp file then rename).

        Raises:
            OSError: If the file cannot be written.
        """
        path = self.snapshot_file
        path.parent.mkdir(parents=True, exist_ok=True)
        content = yaml.safe_dump(
            snapshot.model_dump(mode="json"),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
            width=float("inf"),
        )
        # Temp file in the same dir, then rename
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".yaml.tmp", prefix=".session_")
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(path)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _apply_partial(self, current: SessionSnapshot, partial: Mapping[str, Any]) -> SessionSnapshot:
        unknown = set(partial) - set(SessionSnapshot.model_fields)
        if unknown:
            raise SessionError(f"Unknown session fields: {', '.join(sorted(unknown))}")

        merged = deep_merge(current.model_dump(), partial)
        merged["last_activity"] = datetime.now()
        try:
            snapshot = SessionSnapshot.model_validate(merged)
        except ValidationError as e:
            raise SessionError(f"Invalid session update: {e}") from e

        self._write_snapshot(snapshot)
        return snapshot

    def _require_snapshot(self) -> SessionSnapshot:
        snapshot = self._read_snapshot()
        if snapshot is None:
            raise NoActiveSessionError("No active session found")
        return snapshot

    async def _modify(
        self, build_partial: Callable[[SessionSnapshot], Mapping[str, Any]]
    ) -> SessionSnapshot:
        async with self._lock:
            current = self._require_snapshot()
            return self._apply_partial(current, build_partial(current))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _load_calendar(self) -> CalendarSnapshot:
        path = self.config.calendar_path
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return CalendarSnapshot()
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.warning("Could not read calendar %s, using placeholder date: %s", path, e)
            return CalendarSnapshot()

        current = data.get("current") if isinstance(data, dict) else None
        if not isinstance(current, dict) or "date" not in current:
            return CalendarSnapshot()

        date, clock = str(current["date"]), str(current.get("time", "08:00"))
        return CalendarSnapshot(
            session_start_date=date,
            session_start_time=clock,
            current_date=date,
            current_time=clock,
        )

    def _next_session_id(self, now: datetime) -> str:
        today = now.date().isoformat()
        return f"{today}-{self.history.count_for_date(today) + 1}"

    async def start_session(
        self,
        character_path: str,
        location_id: str,
        xp_baseline: int | None = None,
        autosave_interval: float | None = None,
    ) -> OperationResult:
        """Start a session and write its initial snapshot.

        Args:
            character_path: Character YAML file, relative to the project root or absolute
            location_id: Starting location id
            xp_baseline: XP to measure progression from; defaults to the file's ``experience``
            autosave_interval: Seconds between autosaves; defaults to the config, 0 disables

        Returns:
            OperationResult with the new SessionSnapshot as data
        """
        started = time.perf_counter()
        async with self._lock:
            try:
                snapshot = self._create_snapshot(character_path, location_id, xp_baseline)
                snapshot.performance.startup_time = round(time.perf_counter() - started, 3)
                self._write_snapshot(snapshot)
            except KeeperError as e:
                return OperationResult.fail(e)
            except OSError as e:
                logger.error("Failed to write session file: %s", e)
                return OperationResult.fail(f"Failed to write session file {self.snapshot_file}: {e}")

        interval = self.config.autosave_interval if autosave_interval is None else autosave_interval
        if interval > 0:
            self.start_autosave(interval)

        logger.info(
            "Session started: %s at %s", snapshot.session_id, snapshot.location.current_location_id
        )
        return OperationResult.ok(snapshot)

    def _create_snapshot(
        self, character_path: str, location_id: str, xp_baseline: int | None
    ) -> SessionSnapshot:
        if self.snapshot_file.exists():
            raise SessionActiveError()
        if not character_path:
            raise SessionError("Character path is required")
        if not location_id:
            raise SessionError("Location ID is required")
        if not is_valid_location_id(location_id):
            raise InvalidLocationIdError(location_id)
        if not (self.config.locations_path / location_id).is_dir():
            raise LocationNotFoundError(location_id)

        character = read_character(self.config.resolve(character_path))

        now = datetime.now()
        return SessionSnapshot(
            session_id=self._next_session_id(now),
            start_time=now,
            last_activity=now,
            character=CharacterRef(
                file_path=str(character_path),
                snapshot_hash=character.content_hash,
                initial_level=character.level,
                initial_xp=character.experience if xp_baseline is None else xp_baseline,
            ),
            location=LocationTracking(
                current_location_id=location_id,
                visited_this_session=[LocationVisit(location_id=location_id, entered_at=now)],
            ),
            calendar=self._load_calendar(),
        )

    async def get_current_session(self) -> OperationResult:
        """Current snapshot as data, or None when no session is active. Never fails."""
        return OperationResult.ok(self._read_snapshot())

    async def update_session(self, partial: Mapping[str, Any]) -> OperationResult:
        """Recursively merge ``partial`` into the snapshot and persist it."""
        try:
            async with self._lock:
                current = self._require_snapshot()
                snapshot = self._apply_partial(current, partial)
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            logger.error("Failed to update session file: %s", e)
            return OperationResult.fail(f"Failed to update session: {e}")
        return OperationResult.ok(snapshot)

    async def _modify_result(
        self, build_partial: Callable[[SessionSnapshot], Mapping[str, Any]]
    ) -> OperationResult:
        try:
            snapshot = await self._modify(build_partial)
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            logger.error("Failed to update session file: %s", e)
            return OperationResult.fail(f"Failed to update session: {e}")
        return OperationResult.ok(snapshot)

    async def change_location(self, location_id: str) -> OperationResult:
        """Move to a location and mark it visited in its state document.

        Persisting the visited flag is best-effort: a state-store failure is
        reported as a warning, not as a failed move.
        """
        if not is_valid_location_id(location_id):
            return OperationResult.fail(InvalidLocationIdError(location_id))

        def build(current: SessionSnapshot) -> dict[str, Any]:
            visits = [*current.location.visited_this_session, LocationVisit(location_id=location_id)]
            return {
                "location": {
                    "current_location_id": location_id,
                    "visited_this_session": visits,
                }
            }

        result = await self._modify_result(build)
        if not result.success or self.state_store is None:
            return result

        visited = await self.state_store.mark_visited(location_id)
        if not visited.success:
            message = f"Failed to persist visited state for {location_id}: {visited.error}"
            logger.warning(message)
            result.warnings.append(message)
        return result

    async def record_npc_interaction(self, npc_id: str) -> OperationResult:
        """Append an NPC interaction to the session log."""
        return await self._modify_result(
            lambda current: {
                "npcs": {
                    "interacted_with": [
                        *current.npcs.interacted_with,
                        NPCInteraction(npc_id=npc_id),
                    ]
                }
            }
        )

    async def record_event(self, event_id: str) -> OperationResult:
        """Append a triggered event id to the session log."""
        return await self._modify_result(
            lambda current: {
                "events": {
                    "triggered_this_session": [*current.events.triggered_this_session, event_id]
                }
            }
        )

    async def record_context_load(self, seconds: float) -> OperationResult:
        """Add a context-load timing sample."""
        return await self._modify_result(
            lambda current: {
                "performance": {
                    "context_load_times": [*current.performance.context_load_times, seconds]
                }
            }
        )

    async def record_response_time(self, seconds: float) -> OperationResult:
        """Add a narration response timing sample."""
        return await self._modify_result(
            lambda current: {
                "performance": {
                    "response_times": [*current.performance.response_times, seconds]
                }
            }
        )

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    @property
    def autosave_running(self) -> bool:
        return self._autosave is not None and self._autosave.is_running

    def start_autosave(self, interval: float | None = None) -> None:
        """(Re)start periodic autosave; requires a running event loop."""
        self.stop_autosave()
        interval = self.config.autosave_interval if interval is None else interval
        if interval <= 0:
            return
        self._autosave = AutoSaveTask(interval, self._autosave_tick)
        self._autosave.start()

    def stop_autosave(self) -> None:
        """Stop autosave; no tick writes after this returns."""
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None

    async def _autosave_tick(self) -> None:
        task = self._autosave
        async with self._lock:
            if task is None or task.stopped or self._autosave is not task:
                return
            current = self._read_snapshot()
            if current is None:
                return
            count = current.performance.autosave_count + 1
            self._apply_partial(current, {"performance": {"autosave_count": count}})
        logger.info("Auto-save completed (count: %d)", count)

    # ------------------------------------------------------------------
    # Session end
    # ------------------------------------------------------------------

    async def end_session(self, player_summary: str | None = None) -> OperationResult:
        """Close the active session.

        Compiles and saves the session log, commits a checkpoint (a failure
        there is only a warning), appends a history entry and deletes the
        snapshot file.

        Returns:
            OperationResult with an EndSessionResult as data
        """
        async with self._lock:
            try:
                return self._end_locked(player_summary)
            except KeeperError as e:
                return OperationResult.fail(e)

    def _end_locked(self, player_summary: str | None) -> OperationResult:
        snapshot = self._require_snapshot()
        now = datetime.now()
        snapshot.end_time = now
        warnings: list[str] = []

        compiled = self.log_compiler.generate_summary(snapshot, player_summary, now=now)
        warnings.extend(compiled.warnings)
        if compiled.success:
            content = compiled.data.content
            xp_gained = compiled.data.xp_gained
        else:
            warnings.append(compiled.error or "Session summary unavailable")
            content = f"# Session Log: {snapshot.session_id}\n\n{player_summary or DEFAULT_SUMMARY}\n"
            xp_gained = 0

        saved = self.log_compiler.save_log(content, snapshot.session_id)
        if not saved.success:
            return OperationResult.fail(saved.error or "Failed to save session log")
        log_path = self.config.relative_to_root(saved.data)
        snapshot.log_file = log_path

        commit: str | None = None
        if self.checkpoints is None:
            warnings.append("Checkpoint skipped: no version control configured")
        else:
            committed = self.checkpoints.commit_session(
                snapshot, player_summary or "Session completed"
            )
            if committed.success:
                commit = committed.data["commit"]
            else:
                message = f"Checkpoint skipped: {committed.error}"
                logger.warning(message)
                warnings.append(message)

        entry = SessionHistoryEntry(
            session_id=snapshot.session_id,
            start_time=snapshot.start_time,
            end_time=now,
            duration=round((now - snapshot.start_time).total_seconds() / 3600, 2),
            character=snapshot.character.file_path,
            locations_visited=len(snapshot.location.visited_this_session),
            npcs_interacted=len(snapshot.npcs.interacted_with),
            xp_gained=xp_gained,
            log_file=log_path,
        )
        try:
            self.history.append(entry)
            entry = self.history.find(snapshot.session_id) or entry
        except OSError as e:
            message = f"Failed to update session history: {e}"
            logger.error(message)
            warnings.append(message)

        self.stop_autosave()
        try:
            self.snapshot_file.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete session file: %s", e)
            return OperationResult.fail(f"Failed to close session: {e}")

        logger.info("Session ended: %s (log: %s, commit: %s)", snapshot.session_id, log_path, commit)
        result = EndSessionResult(
            session_id=snapshot.session_id,
            summary=content,
            log_path=log_path,
            commit=commit,
            history_entry=entry,
            warnings=warnings,
        )
        return OperationResult.ok(result, warnings=warnings)

    async def abandon_session(self) -> OperationResult:
        """Drop the snapshot without logging or committing.

        Recovery path for a snapshot file that can no longer be read.
        """
        self.stop_autosave()
        async with self._lock:
            if not self.snapshot_file.exists():
                return OperationResult.fail(NoActiveSessionError())
            try:
                self.snapshot_file.unlink()
            except OSError as e:
                return OperationResult.fail(f"Failed to remove session file: {e}")
        logger.warning("Abandoned session file %s", self.snapshot_file)
        return OperationResult.ok()


__all__ = ["SessionSnapshotManager", "deep_merge"]
