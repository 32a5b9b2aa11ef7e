"""
Checkpoint layer backed by the git command line.

Session ends become commits with a fixed message template and named save
points become annotated tags under the ``save/`` namespace. Git is the
oracle for commit, tag and rollback semantics; this module only formats
messages and tag names and sanitizes input.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from campaign_keeper.checkpoint.runner import (
    CommandNotFound,
    CommandOutput,
    CommandRunner,
    SubprocessRunner,
)
from campaign_keeper.config import KeeperConfig
from campaign_keeper.exceptions import (
    CheckpointError,
    GitNotInstalledError,
    KeeperError,
    NotARepositoryError,
    SavePointExistsError,
    SavePointNotFoundError,
)
from campaign_keeper.locations.store import STATE_FILENAME
from campaign_keeper.models import SavePoint, SessionSnapshot
from campaign_keeper.results import OperationResult

logger = logging.getLogger(__name__)

COMMIT_FOOTER = "Checkpoint recorded by campaign-keeper"
DEFAULT_SAVE_DESCRIPTION = "Manual save point"
SAVE_LIST_FORMAT = "%(refname:short)|%(contents:subject)|%(creatordate:short)"

_COMMIT_HASH_RE = re.compile(r"^\[[^\]]*?\s([0-9a-f]{7,40})\]", re.MULTILINE)
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_save_name(name: str) -> str:
    """Map a free-form save name onto ``[a-z0-9_-]``."""
    return _UNSAFE_NAME_RE.sub("-", name).lower()


def truncate_summary(summary: str, width: int) -> str:
    summary = " ".join(summary.split())
    if len(summary) <= width:
        return summary
    return summary[: width - 3] + "..."


class GitCheckpoints:
    """Commits, save points and rollbacks through the git CLI."""

    def __init__(self, config: KeeperConfig, runner: CommandRunner | None = None) -> None:
        self.config = config
        self.runner = runner or SubprocessRunner()

    # --- Plumbing ---

    def _git(self, *args: str) -> CommandOutput:
        return self.runner.run(["git", *args], cwd=self.config.project_root)

    def _require_git(self) -> None:
        try:
            version = self._git("--version")
        except CommandNotFound as e:
            raise GitNotInstalledError(details={"reason": str(e)}) from e
        if not version.ok:
            raise GitNotInstalledError(details={"stderr": version.stderr.strip()})

        inside = self._git("rev-parse", "--is-inside-work-tree")
        if not inside.ok or inside.stdout.strip() != "true":
            raise NotARepositoryError(details={"cwd": str(self.config.project_root)})

    def _qualify(self, tag: str) -> str:
        prefix = self.config.save_tag_prefix
        return tag if tag.startswith(prefix) else f"{prefix}{tag}"

    def _tag_exists(self, tag: str) -> bool:
        listing = self._git("tag", "-l", tag)
        if not listing.ok:
            raise CheckpointError(
                f"Failed to list tags: {listing.stderr.strip()}", details={"tag": tag}
            )
        return tag in listing.stdout.split()

    # --- Availability ---

    def check_available(self) -> OperationResult:
        """Verify git is installed and the project root is inside a work tree."""
        try:
            self._require_git()
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            return OperationResult.fail(f"Failed to run git: {e}")
        return OperationResult.ok()

    # --- Commits ---

    def paths_to_stage(self, snapshot: SessionSnapshot) -> list[str]:
        """Repository-relative paths touched by a session, without duplicates."""
        config = self.config
        candidates = [
            snapshot.character.file_path,
            config.history_file,
            config.calendar_path,
        ]
        if snapshot.log_file:
            candidates.append(snapshot.log_file)
        for visit in snapshot.location.visited_this_session:
            candidates.append(config.locations_path / visit.location_id / STATE_FILENAME)

        paths: list[str] = []
        for candidate in candidates:
            relative = config.relative_to_root(candidate)
            if relative not in paths:
                paths.append(relative)
        return paths

    def build_commit_message(self, snapshot: SessionSnapshot, summary: str) -> str:
        location = snapshot.location.current_location_id or "Unknown"
        subject = truncate_summary(summary or "Session completed", self.config.commit_summary_width)
        return f"[SESSION] {snapshot.session_date} | {location} | {subject}\n\n{COMMIT_FOOTER}\n"

    def _parse_commit_hash(self, output: str) -> str:
        match = _COMMIT_HASH_RE.search(output)
        if match:
            return match.group(1)

        head = self._git("rev-parse", "--short", "HEAD")
        if head.ok and head.stdout.strip():
            return head.stdout.strip()
        return "unknown"

    def commit_session(self, snapshot: SessionSnapshot, summary: str) -> OperationResult:
        """Stage the session's files and commit them.

        Returns:
            OperationResult whose data is ``{"commit": <short hash>, "staged": [...]}``
        """
        try:
            self._require_git()

            staged: list[str] = []
            for path in self.paths_to_stage(snapshot):
                if not self.config.resolve(path).exists():
                    logger.debug("Skipping missing file for commit: %s", path)
                    continue
                added = self._git("add", "--", path)
                if added.ok:
                    staged.append(path)
                else:
                    logger.warning("Could not stage file %s: %s", path, added.stderr.strip())

            message = self.build_commit_message(snapshot, summary)
            committed = self._git("commit", "-m", message)
            if not committed.ok:
                detail = (committed.stderr or committed.stdout).strip()
                raise CheckpointError(f"Git commit failed: {detail}", details={"staged": staged})

            commit_hash = self._parse_commit_hash(committed.stdout)
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            return OperationResult.fail(f"Failed to commit session: {e}")

        logger.info("Committed session %s as %s", snapshot.session_id, commit_hash)
        return OperationResult.ok({"commit": commit_hash, "staged": staged})

    # --- Save points ---

    def create_save_point(self, name: str, description: str | None = None) -> OperationResult:
        """Create an annotated ``save/<name>`` tag; never overwrites an existing one."""
        sanitized = sanitize_save_name(name or "")
        if not sanitized.strip("-_"):
            return OperationResult.fail(f"Invalid save point name: {name!r}")
        if sanitized != name:
            logger.warning('Save name sanitized: "%s" -> "%s"', name, sanitized)

        tag = self._qualify(sanitized)
        try:
            self._require_git()
            if self._tag_exists(tag):
                raise SavePointExistsError(tag)

            created = self._git("tag", "-a", tag, "-m", description or DEFAULT_SAVE_DESCRIPTION)
            if not created.ok:
                raise CheckpointError(
                    f"Failed to create Git tag: {created.stderr.strip()}", details={"tag": tag}
                )
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            return OperationResult.fail(f"Failed to create save point: {e}")

        logger.info("Created save point %s", tag)
        return OperationResult.ok({"tag": tag})

    def list_save_points(self) -> OperationResult:
        """List save points with description and creation date (unordered)."""
        try:
            self._require_git()
            listing = self._git(
                "tag", "-l", f"{self.config.save_tag_prefix}*", f"--format={SAVE_LIST_FORMAT}"
            )
            if not listing.ok:
                raise CheckpointError(f"Failed to list save points: {listing.stderr.strip()}")
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            return OperationResult.fail(f"Failed to list save points: {e}")

        save_points: list[SavePoint] = []
        for line in listing.stdout.splitlines():
            if line.count("|") < 2:
                continue
            tag, rest = line.split("|", 1)
            description, date = rest.rsplit("|", 1)
            save_points.append(SavePoint(tag=tag.strip(), description=description, date=date.strip()))
        return OperationResult.ok(save_points)

    def rollback_to_save(self, tag: str) -> OperationResult:
        """Check out a save point tag.

        Uncommitted work may be lost; warning the player is the caller's job.
        """
        tag = self._qualify(tag)
        try:
            self._require_git()
            if not self._tag_exists(tag):
                raise SavePointNotFoundError(tag)

            checkout = self._git("checkout", tag)
            if not checkout.ok:
                raise CheckpointError(
                    f"Failed to checkout save point: {checkout.stderr.strip()}",
                    details={"tag": tag},
                )
        except KeeperError as e:
            return OperationResult.fail(e)
        except OSError as e:
            return OperationResult.fail(f"Failed to rollback to save point: {e}")

        logger.info("Rolled back to save point %s", tag)
        return OperationResult.ok({"tag": tag, "output": (checkout.stdout + checkout.stderr).strip()})


__all__ = [
    "GitCheckpoints",
    "sanitize_save_name",
    "truncate_summary",
    "COMMIT_FOOTER",
]
