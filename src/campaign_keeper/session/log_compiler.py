"""
Session Log Compiler.

Renders a finished session as a markdown document by comparing the
snapshot's start-of-session values with a fresh read of the character
file, then saves it under ``logs/`` with a per-day sequence number.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path

from campaign_keeper.characters import CharacterRecord, read_character
from campaign_keeper.config import KeeperConfig
from campaign_keeper.exceptions import CharacterFileError
from campaign_keeper.models import (
    CalendarSnapshot,
    LocationVisit,
    NPCInteraction,
    PerformanceCounters,
    SessionLogSummary,
    SessionSnapshot,
)
from campaign_keeper.results import OperationResult

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Session completed. See details below."
XP_PER_LEVEL_ESTIMATE = 1000
SECTION_RULE = "---\n\n"


def _locations_table(visits: list[LocationVisit]) -> str:
    if not visits:
        return "No locations visited"
    rows = ["| Location | Entry Time | Notes |", "|----------|------------|-------|"]
    for visit in visits:
        rows.append(f"| {visit.location_id} | {visit.entered_at.strftime('%H:%M')} |  |")
    return "\n".join(rows)


def _npcs_table(interactions: list[NPCInteraction]) -> str:
    if not interactions:
        return "No NPCs interacted with"
    counts = Counter(interaction.npc_id for interaction in interactions)
    rows = ["| NPC | Interactions | Relationship |", "|-----|--------------|--------------|"]
    for npc_id, count in counts.items():
        rows.append(f"| {npc_id} | {count} | Neutral |")
    return "\n".join(rows)


def _events_list(events: list[str]) -> str:
    if not events:
        return "No events triggered"
    return "\n".join(f"- **{event}**" for event in events)


def _loot_list(loot: list[str]) -> str:
    if not loot:
        return "No loot acquired"
    return "\n".join(f"- {item}" for item in loot)


def _calendar_section(calendar: CalendarSnapshot | None) -> str:
    if calendar is None:
        return "Calendar data not available"
    return (
        f"- **In-Game Time Elapsed:** {calendar.time_passed}\n"
        f"- **Starting Date/Time:** {calendar.session_start_date}, {calendar.session_start_time}\n"
        f"- **Ending Date/Time:** {calendar.current_date}, {calendar.current_time}"
    )


def _performance_section(performance: PerformanceCounters) -> str:
    return (
        f"- **Session Startup Time:** {performance.startup_time} seconds\n"
        f"- **Average Context Load Time:** {performance.avg_context_load_time:.1f} seconds\n"
        f"- **Average Response Time:** {performance.avg_response_time:.1f} seconds\n"
        f"- **Auto-Saves:** {performance.autosave_count}"
    )


class SessionLogCompiler:
    """Builds and stores human-readable session logs."""

    def __init__(self, config: KeeperConfig) -> None:
        self.config = config

    @property
    def logs_dir(self) -> Path:
        return self.config.logs_path

    def generate_summary(
        self,
        snapshot: SessionSnapshot,
        player_text: str | None = None,
        now: datetime | None = None,
    ) -> OperationResult:
        """Render the session log for ``snapshot``.

        The character file is re-read; if that fails the progression numbers
        fall back to zero and the result carries a warning.

        Returns:
            OperationResult with a SessionLogSummary as data.
        """
        end_time = now or datetime.now()
        warnings: list[str] = []

        character = CharacterRecord(level=snapshot.character.initial_level)
        character_loaded = True
        try:
            character = read_character(self.config.resolve(snapshot.character.file_path))
        except CharacterFileError as e:
            character_loaded = False
            message = f"Could not load character file for session log: {e.message}"
            logger.warning(message)
            warnings.append(message)

        xp_gained = character.experience - snapshot.character.initial_xp if character_loaded else 0
        loot = character.loot_lines() if character_loaded else []

        try:
            content = self._render(snapshot, player_text, character, xp_gained, loot, end_time)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Failed to render session log for %s: %s", snapshot.session_id, e)
            return OperationResult.fail(f"Failed to generate session summary: {e}")

        summary = SessionLogSummary(
            content=content,
            xp_gained=xp_gained,
            character_name=character.name,
            character_level=character.level,
            loot=loot,
            character_loaded=character_loaded,
        )
        return OperationResult.ok(summary, warnings=warnings)

    def _render(
        self,
        snapshot: SessionSnapshot,
        player_text: str | None,
        character: CharacterRecord,
        xp_gained: int,
        loot: list[str],
        end_time: datetime,
    ) -> str:
        elapsed = max(end_time - snapshot.start_time, timedelta(0))
        total_minutes = int(elapsed.total_seconds() // 60)
        hours, minutes = divmod(total_minutes, 60)
        visits = snapshot.location.visited_this_session
        starting_location = visits[0].location_id if visits else snapshot.location.current_location_id
        estimated_total = character.level * XP_PER_LEVEL_ESTIMATE + xp_gained

        parts = [
            f"# Session Log: {snapshot.session_id}\n\n",
            f"**Date:** {snapshot.start_time.date().isoformat()}\n",
            f"**Duration:** {hours}h {minutes}m\n",
            f"**Character:** {character.name} (Level {character.level})\n",
            f"**Starting Location:** {starting_location}\n\n",
            SECTION_RULE,
            "## Summary\n\n",
            f"{player_text.strip() if player_text and player_text.strip() else DEFAULT_SUMMARY}\n\n",
            SECTION_RULE,
            "## Locations Visited\n\n",
            f"{_locations_table(visits)}\n\n",
            SECTION_RULE,
            "## NPCs Interacted With\n\n",
            f"{_npcs_table(snapshot.npcs.interacted_with)}\n\n",
            SECTION_RULE,
            "## Events Triggered\n\n",
            f"{_events_list(snapshot.events.triggered_this_session)}\n\n",
            SECTION_RULE,
            "## Loot Acquired\n\n",
            "_Current inventory at session end._\n\n",
            f"{_loot_list(loot)}\n\n",
            SECTION_RULE,
            "## Character Progression\n\n",
            f"- **XP Gained:** {xp_gained} XP\n",
            f"- **Total XP:** {estimated_total} (estimated)\n",
            f"- **Level Up:** {'Yes' if xp_gained >= XP_PER_LEVEL_ESTIMATE else 'No'}\n\n",
            SECTION_RULE,
            "## Calendar Progression\n\n",
            f"{_calendar_section(snapshot.calendar)}\n\n",
            SECTION_RULE,
            "## Performance Metrics\n\n",
            f"{_performance_section(snapshot.performance)}\n",
        ]
        return "".join(parts)

    def log_path_for(self, session_id: str) -> Path:
        """First free ``<date>-session-<n>.md`` path for a session id."""
        pieces = session_id.split("-")
        date_part = "-".join(pieces[:3])
        try:
            number = max(int(pieces[-1]), 1) if len(pieces) > 3 else 1
        except ValueError:
            number = 1

        path = self.logs_dir / f"{date_part}-session-{number}.md"
        while path.exists():
            number += 1
            path = self.logs_dir / f"{date_part}-session-{number}.md"
        return path

    def save_log(self, content: str, session_id: str) -> OperationResult:
        """Write a session log, never overwriting an existing one.

        Returns:
            OperationResult whose data is the written Path.
        """
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            path = self.log_path_for(session_id)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error("Failed to save session log for %s: %s", session_id, e)
            return OperationResult.fail(f"Failed to save session log: {e}")

        logger.info("Saved session log %s", path)
        return OperationResult.ok(path)


__all__ = ["SessionLogCompiler", "DEFAULT_SUMMARY"]
