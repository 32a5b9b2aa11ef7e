"""
Configuration for the campaign-keeper engine.

All campaign paths are kept relative to ``project_root`` (the git work
tree) so that checkpoint staging can pass repository-relative paths.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "CAMPAIGN_KEEPER_"


class KeeperConfig(BaseModel):
    """Paths and tunables shared by every engine component."""

    project_root: Path = Field(
        default_factory=Path.cwd,
        description="Campaign repository root; git commands run here",
    )
    session_dir: Path = Field(
        default=Path("game-data/session"),
        description="Directory holding the snapshot, history file and logs",
    )
    locations_dir: Path = Field(
        default=Path("game-data/locations"),
        description="Directory with one sub-directory per location",
    )
    calendar_file: Path = Field(
        default=Path("game-data/calendar.yaml"),
        description="In-world calendar state, read at session start and staged on commit",
    )
    autosave_interval: float = Field(
        default=300.0,
        ge=0,
        description="Seconds between autosave ticks (0 disables autosave)",
    )
    ledger_capacity: int = Field(
        default=10,
        ge=1,
        description="Maximum number of actions kept in the in-memory ledger",
    )
    commit_summary_width: int = Field(
        default=72,
        ge=4,
        description="Maximum width of the summary part of a session commit message",
    )
    save_tag_prefix: str = Field(
        default="save/",
        description="Namespace prefix for save point tags",
    )

    @field_validator("project_root")
    @classmethod
    def _resolve_root(cls, value: Path) -> Path:
        return Path(value).resolve()

    def resolve(self, path: Path | str) -> Path:
        """Resolve a possibly relative path against the project root."""
        path = Path(path)
        return path if path.is_absolute() else self.project_root / path

    @property
    def session_path(self) -> Path:
        return self.resolve(self.session_dir)

    @property
    def snapshot_file(self) -> Path:
        return self.session_path / "current-session.yaml"

    @property
    def history_file(self) -> Path:
        return self.session_path / "session-history.yaml"

    @property
    def logs_path(self) -> Path:
        return self.session_path / "logs"

    @property
    def locations_path(self) -> Path:
        return self.resolve(self.locations_dir)

    @property
    def calendar_path(self) -> Path:
        return self.resolve(self.calendar_file)

    def relative_to_root(self, path: Path | str) -> str:
        """Render a path relative to the project root when it lives inside it."""
        resolved = self.resolve(path)
        try:
            return resolved.relative_to(self.project_root).as_posix()
        except ValueError:
            return str(resolved)

    @classmethod
    def from_env(cls, **overrides) -> "KeeperConfig":
        """Build a config from the environment (and a ``.env`` file if present).

        Recognised variables:
            CAMPAIGN_KEEPER_ROOT, CAMPAIGN_KEEPER_SESSION_DIR,
            CAMPAIGN_KEEPER_LOCATIONS_DIR, CAMPAIGN_KEEPER_CALENDAR_FILE,
            CAMPAIGN_KEEPER_AUTOSAVE_INTERVAL, CAMPAIGN_KEEPER_LEDGER_CAPACITY
        """
        if not load_dotenv(find_dotenv(usecwd=True)):
            logger.debug("No .env file found, using process environment only")

        values: dict[str, object] = {}
        env_map = {
            "ROOT": "project_root",
            "SESSION_DIR": "session_dir",
            "LOCATIONS_DIR": "locations_dir",
            "CALENDAR_FILE": "calendar_file",
            "AUTOSAVE_INTERVAL": "autosave_interval",
            "LEDGER_CAPACITY": "ledger_capacity",
        }
        for suffix, field_name in env_map.items():
            raw = os.getenv(ENV_PREFIX + suffix)
            if raw:
                values[field_name] = raw

        values.update(overrides)
        config = cls(**values)
        logger.debug("Campaign root: %s", config.project_root)
        return config


__all__ = ["KeeperConfig", "ENV_PREFIX"]
