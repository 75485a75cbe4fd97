"""
Read-only domain models consumed by the assistant engine.
"""
from taskassist.models.project import (
    ConversationTurn,
    Member,
    Methodology,
    PHASE_LABELS,
    Project,
    Role,
    Task,
    TaskPriority,
    TaskStatus,
    coerce_history,
)

__all__ = [
    "ConversationTurn",
    "Member",
    "Methodology",
    "PHASE_LABELS",
    "Project",
    "Role",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "coerce_history",
]
