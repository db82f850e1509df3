"""File I/O and persistence modules."""

from .file_handler import FileHandler, EXPORT_FORMATS
from .project_store import ProjectStore

__all__ = [
    "FileHandler",
    "EXPORT_FORMATS",
    "ProjectStore",
]
