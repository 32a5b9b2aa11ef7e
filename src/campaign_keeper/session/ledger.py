"""
Session Ledger.

In-memory ring buffer of the most recent play actions, used to assemble
narration context quickly. Nothing here is persisted; a restarted process
starts with an empty, inactive ledger.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime

from shortuuid import random

from campaign_keeper.exceptions import NoActiveSessionError, SessionActiveError
from campaign_keeper.locations.store import LocationStateStore
from campaign_keeper.models import LedgerEntry, LedgerSession, LedgerSummary
from campaign_keeper.results import OperationResult

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10
DEFAULT_RECENT_COUNT = 5


class SessionLedger:
    """Tracks the current location and the last N actions of a session."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        state_store: LocationStateStore | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"Ledger capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.state_store = state_store
        self._session: LedgerSession | None = None
        self._entries: deque[LedgerEntry] = deque(maxlen=capacity)

    @property
    def is_active(self) -> bool:
        return self._session is not None

    def start(self, location_id: str) -> OperationResult:
        """Begin tracking a session at ``location_id``."""
        if self._session is not None:
            return OperationResult.fail(
                SessionActiveError(
                    "Session already active. End current session before starting new one."
                )
            )
        if not location_id:
            return OperationResult.fail("Location ID is required")

        self._session = LedgerSession(
            session_id=random(length=8),
            current_location_id=location_id,
            visited_locations=[location_id],
        )
        self._entries.clear()
        logger.info("Ledger session started: %s at %s", self._session.session_id, location_id)
        return OperationResult.ok(self._session.model_copy())

    def record(
        self,
        description: str,
        result: str | None = None,
        narration: str | None = None,
    ) -> OperationResult:
        """Append an action at the current location, dropping the oldest past capacity."""
        if self._session is None:
            return OperationResult.fail(NoActiveSessionError())

        self._session.action_count += 1
        entry = LedgerEntry(
            action_id=random(length=12),
            location_id=self._session.current_location_id,
            description=description or "Unknown action",
            result=result,
            narration=narration,
        )
        self._entries.append(entry)
        logger.debug("Action recorded (#%d): %s", self._session.action_count, entry.description)
        return OperationResult.ok(entry)

    async def move_to(self, location_id: str) -> OperationResult:
        """Change the current location; marks it visited in the state store when wired."""
        if self._session is None:
            return OperationResult.fail(NoActiveSessionError())

        previous = self._session.current_location_id
        self._session.current_location_id = location_id
        if location_id not in self._session.visited_locations:
            self._session.visited_locations.append(location_id)
        logger.debug("Location changed: %s -> %s", previous, location_id)

        warnings: list[str] = []
        if self.state_store is not None:
            visited = await self.state_store.mark_visited(location_id)
            if not visited.success:
                message = f"Failed to persist visited state for {location_id}: {visited.error}"
                logger.warning(message)
                warnings.append(message)
        return OperationResult.ok(self._session.model_copy(), warnings=warnings)

    def recent(self, count: int = DEFAULT_RECENT_COUNT) -> OperationResult:
        """The last ``count`` actions, oldest first."""
        if count <= 0:
            return OperationResult.ok([])
        return OperationResult.ok(list(self._entries)[-count:])

    def stats(self) -> OperationResult:
        """Running statistics for the active session, None when inactive."""
        if self._session is None:
            return OperationResult.ok(None)
        return OperationResult.ok({
            "session_id": self._session.session_id,
            "duration_minutes": self._minutes_since_start(datetime.now()),
            "action_count": self._session.action_count,
            "locations_visited": len(self._session.visited_locations),
            "current_location": self._session.current_location_id,
            "buffered_actions": len(self._entries),
        })

    def end(self) -> OperationResult:
        """Finish the session, returning its summary and clearing the buffer."""
        if self._session is None:
            return OperationResult.fail(NoActiveSessionError("No active session to end"))

        now = datetime.now()
        self._session.end_time = now
        summary = LedgerSummary(
            session_id=self._session.session_id,
            duration_minutes=self._minutes_since_start(now),
            action_count=self._session.action_count,
            locations_visited=len(self._session.visited_locations),
            final_location_id=self._session.current_location_id,
        )
        logger.info(
            "Ledger session ended: %s (%d actions, %d locations)",
            summary.session_id, summary.action_count, summary.locations_visited,
        )
        self._session = None
        self._entries.clear()
        return OperationResult.ok(summary)

    def _minutes_since_start(self, now: datetime) -> int:
        if self._session is None:
            return 0
        return round((now - self._session.start_time).total_seconds() / 60)


__all__ = ["SessionLedger", "DEFAULT_CAPACITY"]
