"""
Undo recording for graph edits.

Changes are recorded as creation, deletion and modification actions
grouped into action groups; one group is one user-visible undo step.
Only the recording side lives here, replaying groups is up to the host.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import CodeBlockError


class UndoGroupError(CodeBlockError):
    """Raised when action groups are misused."""
    pass


class ActionType(Enum):
    CREATION = "creation"
    DELETION = "deletion"
    MODIFICATION = "modification"


@dataclass
class UndoAction:
    """One recorded change with the model state needed to reverse it."""
    action_type: ActionType
    model_id: str
    snapshot: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionGroup:
    actions: List[UndoAction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.actions)


class UndoRecorder:
    """Collects undo actions into groups."""

    def __init__(self):
        self.history: List[ActionGroup] = []
        self._current: Optional[ActionGroup] = None
        self._suspended = 0
        self.logger = logging.getLogger(__name__)

    @property
    def is_recording(self) -> bool:
        """True while a group is open and recording is not suspended."""
        return self._current is not None and not self._suspended

    def begin_action_group(self) -> Optional[ActionGroup]:
        if self._suspended:
            return None
        if self._current is not None:
            raise UndoGroupError("An action group is already open")
        self._current = ActionGroup()
        return self._current

    def end_action_group(self):
        if self._suspended:
            return
        if self._current is None:
            raise UndoGroupError("No action group is open")
        group, self._current = self._current, None
        if group.actions:
            self.history.append(group)
            self.logger.debug(f"Recorded undo group with {len(group)} action(s)")

    @contextmanager
    def action_group(self):
        """Open an action group that is closed on every exit path."""
        group = self.begin_action_group()
        try:
            yield group
        finally:
            self.end_action_group()

    @contextmanager
    def suspended(self):
        """Run a block of changes without creating any undo entries."""
        self._suspended += 1
        try:
            yield
        finally:
            self._suspended -= 1

    def record_creation(self, model):
        self._record(ActionType.CREATION, model)

    def record_deletion(self, model):
        self._record(ActionType.DELETION, model)

    def record_modification(self, model):
        self._record(ActionType.MODIFICATION, model)

    def _record(self, action_type: ActionType, model):
        if self._suspended:
            return
        if self._current is None:
            raise UndoGroupError(f"Cannot record {action_type.value} outside an action group")
        self._current.actions.append(
            UndoAction(action_type=action_type, model_id=model.id, snapshot=model.to_dict())
        )

    def clear(self):
        self.history.clear()
