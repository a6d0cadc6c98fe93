"""File organization: conflict-free moves into category folders."""

from .models import OrganizeResult
from .organizer import FileOrganizer, MoveTracker, same_file, unique_target

__all__ = ["FileOrganizer", "MoveTracker", "OrganizeResult", "same_file", "unique_target"]
