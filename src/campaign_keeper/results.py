"""Uniform outcome envelope returned by every public engine operation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from campaign_keeper.exceptions import KeeperError


class OperationResult(BaseModel):
    """Success flag, optional payload, optional error.

    ``warnings`` carries degraded-but-successful conditions (fallback data,
    skipped best-effort side effects) so callers can surface them without
    treating the call as failed.
    """

    success: bool = Field(description="Whether the operation succeeded")
    data: Any = Field(default=None, description="Operation payload")
    error: str | None = Field(default=None, description="Error message if the operation failed")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal degradation notes")

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def ok(cls, data: Any = None, warnings: list[str] | None = None) -> "OperationResult":
        return cls(success=True, data=data, warnings=warnings or [])

    @classmethod
    def fail(cls, error: str | KeeperError, data: Any = None) -> "OperationResult":
        message = error.message if isinstance(error, KeeperError) else str(error)
        return cls(success=False, data=data, error=message)

    @property
    def degraded(self) -> bool:
        """Whether a successful result was built on fallback data."""
        return self.success and bool(self.warnings)


__all__ = ["OperationResult"]
