"""
Pytest configuration and fixtures for campaign-keeper tests.
"""

import sys
from fnmatch import fnmatch
from pathlib import Path
from typing import Sequence

import pytest
import yaml

# Add src directory to Python path to allow importing campaign_keeper
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from campaign_keeper.checkpoint.runner import CommandNotFound, CommandOutput  # noqa: E402
from campaign_keeper.config import KeeperConfig  # noqa: E402


# Configure anyio to only use asyncio (not trio)
@pytest.fixture
def anyio_backend():
    return "asyncio"


CHARACTER = {
    "name": "Kapi",
    "level": 3,
    "experience": 900,
    "inventory": [
        {"name": "Longsword", "quantity": 1},
        {"name": "Torch", "quantity": 5},
        "Rope",
    ],
}


class FakeGitRunner:
    """Scripted stand-in for the git CLI with an in-memory tag table."""

    def __init__(
        self,
        installed: bool = True,
        repo: bool = True,
        commit_ok: bool = True,
        commit_output: str = "[main 1a2b3c4] [SESSION] test\n 3 files changed\n",
        head: str = "9f8e7d6",
    ) -> None:
        self.installed = installed
        self.repo = repo
        self.commit_ok = commit_ok
        self.commit_output = commit_output
        self.head = head
        self.calls: list[list[str]] = []
        self.tags: dict[str, str] = {}
        self.checked_out: str | None = None

    def commands(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if len(call) > 1 and call[1] == name]

    def run(self, args: Sequence[str], cwd: Path) -> CommandOutput:
        args = list(args)
        self.calls.append(args)
        if not self.installed:
            raise CommandNotFound("[Errno 2] No such file or directory: 'git'")

        command = args[1]
        if command == "--version":
            return CommandOutput(0, "git version 2.43.0\n")
        if command == "rev-parse":
            if "--is-inside-work-tree" in args:
                if self.repo:
                    return CommandOutput(0, "true\n")
                return CommandOutput(128, "", "fatal: not a git repository\n")
            return CommandOutput(0, f"{self.head}\n")
        if command == "add":
            return CommandOutput(0)
        if command == "commit":
            if self.commit_ok:
                return CommandOutput(0, self.commit_output)
            return CommandOutput(1, "nothing to commit, working tree clean\n")
        if command == "tag":
            return self._tag(args[2:])
        if command == "checkout":
            self.checked_out = args[2]
            return CommandOutput(0, "", f"HEAD is now at {self.head}\n")
        return CommandOutput(1, "", f"unexpected command: {args}\n")

    def _tag(self, args: list[str]) -> CommandOutput:
        if args[0] == "-l":
            pattern = args[1]
            matches = [tag for tag in self.tags if fnmatch(tag, pattern)]
            if len(args) > 2:
                lines = [f"{tag}|{self.tags[tag]}|2026-10-18" for tag in matches]
                return CommandOutput(0, "".join(f"{line}\n" for line in lines))
            return CommandOutput(0, "".join(f"{tag}\n" for tag in matches))
        if args[0] == "-a":
            tag, message = args[1], args[3]
            if tag in self.tags:
                return CommandOutput(128, "", f"fatal: tag '{tag}' already exists\n")
            self.tags[tag] = message
            return CommandOutput(0)
        return CommandOutput(1, "", f"unexpected tag args: {args}\n")


@pytest.fixture
def campaign_root(tmp_path: Path) -> Path:
    """A campaign directory with a character, a calendar and two locations."""
    root = tmp_path / "campaign"
    characters = root / "game-data" / "characters"
    characters.mkdir(parents=True)
    (characters / "kapi.yaml").write_text(yaml.safe_dump(CHARACTER), encoding="utf-8")

    (root / "game-data" / "calendar.yaml").write_text(
        yaml.safe_dump({"current": {"date": "735-10-3", "time": "14:30"}}),
        encoding="utf-8",
    )

    for location_id in ("village", "tser-pool"):
        (root / "game-data" / "locations" / location_id).mkdir(parents=True)
    return root


@pytest.fixture
def config(campaign_root: Path) -> KeeperConfig:
    return KeeperConfig(project_root=campaign_root, autosave_interval=0)


@pytest.fixture
def character_path() -> str:
    return "game-data/characters/kapi.yaml"


@pytest.fixture
def fake_git() -> FakeGitRunner:
    return FakeGitRunner()


@pytest.fixture
def make_git():
    """Factory for FakeGitRunner variants (not installed, not a repo, ...)."""
    return FakeGitRunner
