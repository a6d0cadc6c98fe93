"""Organization result models."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel


class OrganizeResult(BaseModel):
    """Outcome of organizing a single file.

    Attributes:
        success: Whether the file ended up at ``new_path``.
        skipped: True when the file already sat at its target and nothing moved.
        original_path: Path of the file before organization.
        new_path: Final path of the file; ``None`` on failure.
        new_name: Basename of ``new_path``.
        category: Category the file was organized into.
        error: Failure description when ``success`` is false.
        organization_time: Seconds spent resolving the target and moving.
    """

    success: bool
    skipped: bool = False
    original_path: Path
    new_path: Optional[Path] = None
    new_name: Optional[str] = None
    category: Optional[str] = None
    error: Optional[str] = None
    organization_time: float = 0.0


__all__ = ["OrganizeResult"]
