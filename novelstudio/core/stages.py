"""Authoring stage gating."""

from enum import IntEnum
from typing import List

from .exceptions import StageLockedError


class Stage(IntEnum):
    ARCHITECTURE = 1
    PLANNING = 2
    WRITING = 3


STAGE_LABELS = {
    Stage.ARCHITECTURE: "架构",
    Stage.PLANNING: "编排",
    Stage.WRITING: "写作",
}


class StageController:
    """Gates forward movement through Architecture -> Planning -> Writing.

    ``project.current_step`` is a high-water mark: any stage up to it may be
    viewed, and nothing here ever lowers it.
    """

    def missing_requirements(self, project, target: Stage) -> List[str]:
        """Reasons the project cannot move forward into ``target``; empty when it can."""
        missing = []
        if target >= Stage.PLANNING:
            if not project.idea.strip():
                missing.append("a premise (idea) is required")
            if not project.architecture.is_populated():
                missing.append("at least one architecture field must be filled in")
        if target >= Stage.WRITING and not project.chapters:
            missing.append("at least one planned chapter is required")
        return missing

    def can_advance(self, project, target: Stage) -> bool:
        if target > project.current_step + 1:
            return False
        return not self.missing_requirements(project, target)

    def advance(self, project, target: Stage = None) -> Stage:
        """Raise the high-water mark to ``target`` (default: the next stage).

        Moving to a stage at or below the mark is a no-op view change.
        """
        if target is None:
            target = Stage(min(Stage.WRITING, project.current_step + 1))
        target = Stage(target)
        if target <= project.current_step:
            return target
        if target > project.current_step + 1:
            raise StageLockedError(
                f"Cannot skip from stage {project.current_step} to stage {int(target)}"
            )
        missing = self.missing_requirements(project, target)
        if missing:
            raise StageLockedError(
                f"Cannot enter {STAGE_LABELS[target]} stage: " + "; ".join(missing)
            )
        project.current_step = int(target)
        return target

    def can_view(self, project, stage: Stage) -> bool:
        return Stage.ARCHITECTURE <= stage <= project.current_step

    def require(self, project, stage: Stage) -> None:
        """Block actions that belong to a stage the project has not reached."""
        if project.current_step < stage:
            raise StageLockedError(
                f"This action needs the {STAGE_LABELS[Stage(stage)]} stage; "
                f"project is at stage {project.current_step}"
            )
