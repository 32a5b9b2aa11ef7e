"""Pydantic models for sessions, location state, history and save points."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ----------------------------------------------------------------------
# Session snapshot
# ----------------------------------------------------------------------

class CharacterRef(BaseModel):
    """Reference to the character file plus values captured at session start."""
    file_path: str = Field(description="Path to the character YAML file")
    snapshot_hash: str = Field(default="", description="MD5 of the character file at session start")
    initial_level: int = Field(default=1, ge=0, description="Character level at session start")
    initial_xp: int = Field(default=0, description="Character XP at session start")


class LocationVisit(BaseModel):
    """One entry into a location during the session."""
    location_id: str
    entered_at: datetime = Field(default_factory=datetime.now)


class LocationTracking(BaseModel):
    current_location_id: str
    visited_this_session: list[LocationVisit] = Field(default_factory=list)


class NPCInteraction(BaseModel):
    npc_id: str
    at: datetime = Field(default_factory=datetime.now)


class NPCLog(BaseModel):
    active_npcs: list[str] = Field(default_factory=list)
    interacted_with: list[NPCInteraction] = Field(default_factory=list)


class EventLog(BaseModel):
    triggered_this_session: list[str] = Field(default_factory=list)
    pending_events: list[str] = Field(default_factory=list)


class CalendarSnapshot(BaseModel):
    """In-world date and time at session start and now."""
    session_start_date: str = "735-10-1"
    session_start_time: str = "08:00"
    current_date: str = "735-10-1"
    current_time: str = "08:00"
    time_passed: str = "0 hours"


class PerformanceCounters(BaseModel):
    """Advisory telemetry, never used for control flow."""
    startup_time: float = 0.0
    context_load_times: list[float] = Field(default_factory=list)
    response_times: list[float] = Field(default_factory=list)
    autosave_count: int = Field(default=0, ge=0)

    @property
    def avg_context_load_time(self) -> float:
        if not self.context_load_times:
            return 0.0
        return sum(self.context_load_times) / len(self.context_load_times)

    @property
    def avg_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)


class SessionSnapshot(BaseModel):
    """Durable projection of the single active play session."""
    session_id: str = Field(description="Date plus per-day sequence, e.g. 2026-10-18-2")
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    last_activity: datetime = Field(default_factory=datetime.now)
    character: CharacterRef
    location: LocationTracking
    npcs: NPCLog = Field(default_factory=NPCLog)
    events: EventLog = Field(default_factory=EventLog)
    calendar: CalendarSnapshot = Field(default_factory=CalendarSnapshot)
    performance: PerformanceCounters = Field(default_factory=PerformanceCounters)
    log_file: str | None = Field(default=None, description="Session log path once saved")

    @property
    def session_date(self) -> str:
        """The ``YYYY-MM-DD`` part of the session id."""
        return "-".join(self.session_id.split("-")[:3])

    @property
    def session_number(self) -> int:
        try:
            return int(self.session_id.split("-")[-1])
        except ValueError:
            return 1


# ----------------------------------------------------------------------
# Location state
# ----------------------------------------------------------------------

class LocationState(BaseModel):
    """Structured state stored in a location document's front matter."""
    visited: bool = False
    discovered_items: list[str] = Field(default_factory=list)
    completed_events: list[str] = Field(default_factory=list)
    npc_states: dict[str, Any] = Field(default_factory=dict)
    custom_state: dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime | None = None

    model_config = {"extra": "forbid"}


# ----------------------------------------------------------------------
# History, save points, session end
# ----------------------------------------------------------------------

class SessionHistoryEntry(BaseModel):
    """Condensed, permanent record of one finished session."""
    session_id: str
    start_time: datetime
    end_time: datetime
    duration: float = Field(description="Real-world duration in hours")
    character: str
    locations_visited: int = 0
    npcs_interacted: int = 0
    xp_gained: int = 0
    log_file: str | None = None


class SavePoint(BaseModel):
    """An annotated tag under the save namespace."""
    tag: str
    description: str = ""
    date: str = ""


class SessionLogSummary(BaseModel):
    """Rendered session log plus the numbers derived while rendering it."""
    content: str
    xp_gained: int = 0
    character_name: str = "Unknown"
    character_level: int = 1
    loot: list[str] = Field(default_factory=list)
    character_loaded: bool = True


class EndSessionResult(BaseModel):
    """Composite payload returned when a session closes."""
    session_id: str
    summary: str
    log_path: str | None = None
    commit: str | None = Field(default=None, description="Short commit hash, None when checkpointing failed")
    history_entry: SessionHistoryEntry | None = None
    warnings: list[str] = Field(default_factory=list)


# ----------------------------------------------------------------------
# Ledger
# ----------------------------------------------------------------------

class LedgerEntry(BaseModel):
    """A single recent play action (in memory only)."""
    action_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    location_id: str
    description: str
    result: str | None = None
    narration: str | None = None


class LedgerSession(BaseModel):
    session_id: str
    current_location_id: str
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    action_count: int = 0
    visited_locations: list[str] = Field(default_factory=list)


class LedgerSummary(BaseModel):
    session_id: str
    duration_minutes: int
    action_count: int
    locations_visited: int
    final_location_id: str


__all__ = [
    "CharacterRef",
    "LocationVisit",
    "LocationTracking",
    "NPCInteraction",
    "NPCLog",
    "EventLog",
    "CalendarSnapshot",
    "PerformanceCounters",
    "SessionSnapshot",
    "LocationState",
    "SessionHistoryEntry",
    "SavePoint",
    "SessionLogSummary",
    "EndSessionResult",
    "LedgerEntry",
    "LedgerSession",
    "LedgerSummary",
]
