"""Progress Calculator - Overall and per-stage completion"""
import math
from typing import List, Optional, Sequence

from ..domain.models import CompiledStep, RuntimeMachine, StageProgress, WorkflowProgress


def _percentage(completed: int, total: int) -> int:
    """Half-up rounded percentage; 0 when there is nothing to complete"""
    if total <= 0:
        return 0
    return int(math.floor(100 * completed / total + 0.5))


class ProgressCalculator:
    """Derive progress figures from a machine and a completed-step history"""

    def get_workflow_progress(
        self,
        machine: RuntimeMachine,
        completed_steps: Sequence[str]
    ) -> WorkflowProgress:
        """
        Overall progress

        ``completed`` counts the history length, clamped to the number of steps.
        """
        total = len(machine.steps)
        completed = min(len(completed_steps), total)
        return WorkflowProgress(
            total=total,
            completed=completed,
            remaining=total - completed,
            percentage=_percentage(completed, total),
        )

    def get_stage_progress(
        self,
        machine: RuntimeMachine,
        completed_steps: Sequence[str]
    ) -> List[StageProgress]:
        """Per-stage progress in the order stages first appear in the machine"""
        done = set(completed_steps)
        result = []
        for stage in machine.stages:
            stage_steps = machine.steps_in_stage(stage.id)
            total = len(stage_steps)
            completed = sum(1 for step in stage_steps if step.id in done)
            result.append(StageProgress(
                stage_id=stage.id,
                stage_name=stage.name,
                total=total,
                completed=completed,
                percentage=_percentage(completed, total),
            ))
        return result

    def is_stage_completed(
        self,
        machine: RuntimeMachine,
        stage_id: str,
        completed_steps: Sequence[str]
    ) -> bool:
        stage_steps = machine.steps_in_stage(stage_id)
        if not stage_steps:
            return False
        done = set(completed_steps)
        return all(step.id in done for step in stage_steps)

    def completed_stages(
        self,
        machine: RuntimeMachine,
        completed_steps: Sequence[str]
    ) -> List[str]:
        """Ids of every stage whose steps are all completed, in stage order"""
        return [
            stage.id for stage in machine.stages
            if self.is_stage_completed(machine, stage.id, completed_steps)
        ]

    def get_next_uncompleted_step(
        self,
        machine: RuntimeMachine,
        completed_steps: Sequence[str]
    ) -> Optional[CompiledStep]:
        done = set(completed_steps)
        for step in machine.steps:
            if step.id not in done:
                return step
        return None
