"""Project collection and its durable lifecycle."""

import asyncio
import copy
import json
import logging
import threading
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

from ..core.exceptions import (
    ProjectBusyError,
    ProjectConflictError,
    ProjectNotFoundError,
    ValidationError,
)
from ..core.project import Project, DEFAULT_TITLE
from .file_handler import FileHandler

logger = logging.getLogger(__name__)

AUTOSAVE_INTERVAL = 120.0

# Save counter stored in each record; a mismatch means another process wrote the file.
REVISION_KEY = "revision"


class ProjectStore:
    """Owns every project in a directory, one ``<id>.json`` file each.

    Mutations happen in memory and mark the project dirty; :meth:`flush` and
    :meth:`autosave` persist dirty projects. Each project's record is serialized
    in one synchronous step and written atomically under a per-project lock, so
    a save never interleaves with an edit or with another save.

    Every record on disk carries a save counter. A save whose file has been
    rewritten or removed by another store since this one last read it is refused
    with :class:`ProjectConflictError`, so a stale copy never overwrites newer work.
    """

    def __init__(self, directory: Union[str, Path], file_handler: Optional[FileHandler] = None):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.file_handler = file_handler or FileHandler()
        self._projects: Dict[str, Project] = {}
        self._revisions: Dict[str, int] = {}
        self._saved_revisions: Dict[str, int] = {}
        self._disk_revisions: Dict[str, int] = {}
        self._write_locks: Dict[str, threading.Lock] = {}
        self._busy_locks: Dict[str, asyncio.Lock] = {}
        self.load_all()

    def _path(self, project_id: str) -> Path:
        return self.directory / f"{project_id}.json"

    def load_all(self) -> None:
        """Load every readable record; corrupt files are skipped with a warning."""
        for path in sorted(self.directory.glob("*.json")):
            try:
                data = self.file_handler.read_json(path)
                project = Project.from_dict(data)
                disk_revision = int(data.get(REVISION_KEY) or 0)
            except (OSError, ValueError, KeyError, TypeError, AttributeError, OverflowError) as e:
                logger.warning("Skipping unreadable project file %s: %s", path.name, e)
                continue
            self._projects[project.id] = project
            self._revisions[project.id] = 0
            self._saved_revisions[project.id] = 0
            self._disk_revisions[project.id] = disk_revision
        logger.debug("Loaded %d project(s) from %s", len(self._projects), self.directory)

    # Collection

    def create(self, title: str = DEFAULT_TITLE, idea: str = "") -> Project:
        project = Project(title=title, idea=idea)
        self._projects[project.id] = project
        self.mark_dirty(project.id)
        self.save(project.id)
        logger.info("Created project %s (%s)", project.id, title)
        return project

    def get(self, project_id: str) -> Project:
        try:
            return self._projects[project_id]
        except KeyError:
            raise ProjectNotFoundError(f"Project {project_id} not found") from None

    def list(self) -> List[Project]:
        """Projects, most recently modified first."""
        return sorted(self._projects.values(), key=lambda p: p.last_modified, reverse=True)

    def delete(self, project_id: str) -> None:
        self.get(project_id)
        with self._write_lock(project_id):
            del self._projects[project_id]
            self._path(project_id).unlink(missing_ok=True)
        self._revisions.pop(project_id, None)
        self._saved_revisions.pop(project_id, None)
        self._disk_revisions.pop(project_id, None)
        logger.info("Deleted project %s", project_id)

    # Mutation

    def update(self, project_id: str, mutator: Callable[[Project], Any]) -> Project:
        """Apply ``mutator`` all-or-nothing and stamp the modification time.

        The mutator runs against a copy; only if it returns without raising is the
        copy's state moved into the live project, which keeps its identity.
        """
        project = self.get(project_id)
        working = copy.deepcopy(project)
        mutator(working)
        project.__dict__.update(working.__dict__)
        self.commit(project)
        return project

    def commit(self, project: Project) -> None:
        """Record that ``project`` changed in place (for example after a generation call)."""
        if project.id not in self._projects:
            raise ProjectNotFoundError(f"Project {project.id} not found")
        project.touch()
        self.mark_dirty(project.id)

    def mark_dirty(self, project_id: str) -> None:
        self._revisions[project_id] = self._revisions.get(project_id, 0) + 1

    def is_dirty(self, project_id: str) -> bool:
        return self._revisions.get(project_id, 0) != self._saved_revisions.get(project_id, 0)

    @asynccontextmanager
    async def busy(self, project_id: str) -> AsyncIterator[Project]:
        """Hold the project's single generation slot; a second caller is refused, not queued."""
        project = self.get(project_id)
        lock = self._busy_locks.setdefault(project_id, asyncio.Lock())
        if lock.locked():
            raise ProjectBusyError("Another generation is already running for this project")
        async with lock:
            yield project

    def is_busy(self, project_id: str) -> bool:
        lock = self._busy_locks.get(project_id)
        return bool(lock and lock.locked())

    # Import / export

    def import_project(self, payload: Union[str, bytes, Dict[str, Any]]) -> Project:
        """Create a project from an exported record.

        Missing optional fields take defaults. A record that cannot be decoded is
        rejected whole and nothing is added. The import always gets a fresh id.
        """
        try:
            data = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
            project = Project.from_dict(data)
        except (ValueError, KeyError, TypeError, AttributeError, OverflowError) as e:
            raise ValidationError(f"Not a valid project file: {e}") from e

        project.id = uuid.uuid4().hex
        self._projects[project.id] = project
        self.commit(project)
        self.save(project.id)
        logger.info("Imported project %s (%s)", project.id, project.title)
        return project

    def import_file(self, file_path: Union[str, Path]) -> Project:
        try:
            text = Path(file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ValidationError(f"Cannot read {file_path}: {e}") from e
        return self.import_project(text)

    def export_json(self, project_id: str) -> str:
        return json.dumps(self.get(project_id).to_dict(), indent=2, ensure_ascii=False)

    # Persistence

    def _write_lock(self, project_id: str) -> threading.Lock:
        return self._write_locks.setdefault(project_id, threading.Lock())

    def _snapshot(self, project_id: str):
        return self._revisions.get(project_id, 0), self.get(project_id).to_dict()

    def _disk_revision(self, project_id: str) -> Optional[int]:
        """Save counter of the file as it is now; None when there is no file."""
        path = self._path(project_id)
        if not path.exists():
            return None
        try:
            data = self.file_handler.read_json(path)
            return int(data.get(REVISION_KEY) or 0)
        except (OSError, ValueError, TypeError, AttributeError):
            return -1

    def _write(self, project_id: str, revision: int, record: Dict[str, Any]) -> None:
        with self._write_lock(project_id):
            if project_id not in self._projects:
                return
            if revision <= self._saved_revisions.get(project_id, -1):
                return
            expected = self._disk_revisions.get(project_id)
            found = self._disk_revision(project_id)
            if found != expected:
                # Not retried by later flushes; the caller reloads and redoes the edit.
                self._saved_revisions[project_id] = revision
                logger.warning(
                    "Refusing to save %s: file changed on disk (revision %s, expected %s)",
                    project_id, found, expected,
                )
                raise ProjectConflictError(
                    f"Project {project_id} was changed by another session; these changes were not saved"
                )
            written = (expected or 0) + 1
            self.file_handler.write_json(self._path(project_id), {**record, REVISION_KEY: written})
            self._disk_revisions[project_id] = written
            self._saved_revisions[project_id] = revision

    def save(self, project_id: str) -> None:
        revision, record = self._snapshot(project_id)
        self._write(project_id, revision, record)

    def flush(self) -> int:
        """Persist every dirty project now. Returns how many were written.

        Projects changed on disk by another session are skipped; once the rest are
        written the first such conflict is raised.
        """
        dirty = [pid for pid in self._projects if self.is_dirty(pid)]
        conflicts = []
        for project_id in dirty:
            try:
                self.save(project_id)
            except ProjectConflictError as e:
                conflicts.append(e)
        written = len(dirty) - len(conflicts)
        if written:
            logger.info("Flushed %d project(s)", written)
        if conflicts:
            raise conflicts[0]
        return written

    async def autosave(self, interval: float = AUTOSAVE_INTERVAL, stop_event: Optional[asyncio.Event] = None) -> None:
        """Persist dirty projects every ``interval`` seconds until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            snapshots = [
                (pid, *self._snapshot(pid)) for pid in list(self._projects) if self.is_dirty(pid)
            ]
            for project_id, revision, record in snapshots:
                try:
                    await asyncio.to_thread(self._write, project_id, revision, record)
                except ProjectConflictError as e:
                    logger.error("Autosave skipped: %s", e)
            if snapshots:
                logger.debug("Autosaved %d project(s)", len(snapshots))
