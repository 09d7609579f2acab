"""
Edit History - undo/redo over project snapshots.

Every edit operation returns a new project and leaves its input untouched,
so the history keeps the project before each edit alongside the EditResult
that produced the next one. Undo restores the earlier snapshot; redo
restores the later one. A new edit after an undo discards the redo stack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from timeline_core.models.project_models import EditRequest, EditResult, Project
from timeline_core.operators.timeline_editor import apply_edit
from timeline_core.operators.timeline_operator import InvalidOperationError


logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 100


@dataclass(frozen=True)
class HistoryEntry:
    """One applied edit: the project before it and the result after it."""

    before: Project
    result: EditResult

    @property
    def description(self) -> str:
        return self.result.description or self.result.operation_type


class EditHistory:
    """
    Bounded undo/redo stack around a working project.

    Usage:
        history = EditHistory(project)
        history.execute({"operation": "split_clip", "clip_id": "clip-1", "split_time": 500})
        history.undo()
        history.redo()
        project = history.project
    """

    def __init__(self, project: Project, max_history: int = DEFAULT_MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history
        self._project = project
        self._undo_stack: list[HistoryEntry] = []
        self._redo_stack: list[HistoryEntry] = []

    @property
    def project(self) -> Project:
        return self._project

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    @property
    def undo_descriptions(self) -> list[str]:
        """Most recent first."""
        return [entry.description for entry in reversed(self._undo_stack)]

    @property
    def redo_descriptions(self) -> list[str]:
        """Next redo first."""
        return [entry.description for entry in reversed(self._redo_stack)]

    def execute(self, request: EditRequest | dict[str, Any]) -> EditResult:
        """Apply a clip edit request and record it."""
        return self.apply(apply_edit, request)

    def apply(
        self,
        operation: Callable[..., EditResult],
        *args: Any,
        **kwargs: Any,
    ) -> EditResult:
        """
        Run any project operation (`operation(project, *args, **kwargs)`) and record it.

        Failed operations raise before anything is recorded, so the history
        and the current project stay as they were.
        """
        before = self._project
        result = operation(before, *args, **kwargs)

        self._undo_stack.append(HistoryEntry(before=before, result=result))
        if len(self._undo_stack) > self.max_history:
            dropped = self._undo_stack.pop(0)
            logger.debug("Edit history full; dropped oldest entry: %s", dropped.description)
        self._redo_stack.clear()
        self._project = result.project
        return result

    def undo(self) -> EditResult:
        """
        Restore the project from before the most recent edit.

        Raises:
            InvalidOperationError: Nothing to undo
        """
        if not self._undo_stack:
            raise InvalidOperationError("Nothing to undo")

        entry = self._undo_stack.pop()
        self._redo_stack.append(entry)
        self._project = entry.before

        logger.info("undo: %s", entry.description)
        return EditResult(
            project=entry.before,
            operation_type="undo",
            description=f"Undid: {entry.description}",
            operation_data={"undone_operation": entry.result.operation_type},
        )

    def redo(self) -> EditResult:
        """
        Re-apply the most recently undone edit.

        Raises:
            InvalidOperationError: Nothing to redo
        """
        if not self._redo_stack:
            raise InvalidOperationError("Nothing to redo")

        entry = self._redo_stack.pop()
        self._undo_stack.append(entry)
        self._project = entry.result.project

        logger.info("redo: %s", entry.description)
        return EditResult(
            project=entry.result.project,
            operation_type="redo",
            description=f"Redid: {entry.description}",
            operation_data={"redone_operation": entry.result.operation_type},
        )

    def clear(self) -> None:
        self._undo_stack.clear()
        self._redo_stack.clear()
