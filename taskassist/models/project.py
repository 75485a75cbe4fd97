"""
Project / task / member models as seen by the assistant.

These are read-only views handed in by the surrounding application; the
engine never writes them back. Inputs are validated with Pydantic so that
plain dicts (e.g. decoded JSON) can be passed straight in.
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaskStatus(str, Enum):
    """Canonical task statuses as stored by the application."""
    TODO = "todo"
    IN_PROGRESS = "inprogress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    """Canonical task priorities."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Methodology(str, Enum):
    """Board methodology; only changes the labels shown to users."""
    KANBAN = "kanban"
    SCRUM = "scrum"
    AGILE = "agile"
    WATERFALL = "waterfall"
    LEAN = "lean"


class Role(str, Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"


# Human labels per methodology, keyed by canonical status
PHASE_LABELS: dict[Methodology, dict[TaskStatus, str]] = {
    Methodology.KANBAN: {
        TaskStatus.TODO: "To Do",
        TaskStatus.IN_PROGRESS: "In Progress",
        TaskStatus.REVIEW: "Review",
        TaskStatus.DONE: "Done",
    },
    Methodology.SCRUM: {
        TaskStatus.TODO: "Backlog",
        TaskStatus.IN_PROGRESS: "In Progress",
        TaskStatus.REVIEW: "Review",
        TaskStatus.DONE: "Done",
    },
    Methodology.WATERFALL: {
        TaskStatus.TODO: "Requirements",
        TaskStatus.IN_PROGRESS: "Design",
        TaskStatus.REVIEW: "Verification",
        TaskStatus.DONE: "Maintenance",
    },
    Methodology.LEAN: {
        TaskStatus.TODO: "Backlog",
        TaskStatus.IN_PROGRESS: "In Progress",
        TaskStatus.REVIEW: "Testing",
        TaskStatus.DONE: "Done",
    },
}
PHASE_LABELS[Methodology.AGILE] = PHASE_LABELS[Methodology.SCRUM]


class Member(BaseModel):
    """A project member (or the owner)."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: Optional[str] = None


class Task(BaseModel):
    """A single task. ``id`` is the only stable cross-turn reference."""
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: Optional[Member] = None
    end_date: Optional[date] = None
    description: Optional[str] = None
    creator: Optional[Member] = None
    created_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v):
        """Unknown statuses fall back to todo, like the board does."""
        if isinstance(v, TaskStatus):
            return v
        token = str(v or "").strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        try:
            return TaskStatus(token)
        except ValueError:
            return TaskStatus.TODO

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, v):
        if isinstance(v, TaskPriority):
            return v
        try:
            return TaskPriority(str(v or "").strip().lower())
        except ValueError:
            return TaskPriority.MEDIUM

    @field_validator("end_date", mode="before")
    @classmethod
    def coerce_end_date(cls, v):
        # Datetimes from the ORM are truncated to their calendar day
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class Project(BaseModel):
    """A project with its owner, members and tasks in creation order."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    owner: Member
    members: list[Member] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)
    description: Optional[str] = None
    methodology: Methodology = Methodology.KANBAN

    @field_validator("methodology", mode="before")
    @classmethod
    def coerce_methodology(cls, v):
        if isinstance(v, Methodology):
            return v
        try:
            return Methodology(str(v or "").strip().lower())
        except ValueError:
            return Methodology.KANBAN

    @field_validator("members")
    @classmethod
    def dedupe_members(cls, v: list[Member]) -> list[Member]:
        """Members are unique by id; the first occurrence wins."""
        seen: set[int] = set()
        unique_members = []
        for member in v:
            if member.id not in seen:
                seen.add(member.id)
                unique_members.append(member)
        return unique_members

    @model_validator(mode="after")
    def validate_unique_task_ids(self) -> "Project":
        task_ids = [t.id for t in self.tasks]
        if len(task_ids) != len(set(task_ids)):
            raise ValueError("Task ids must be unique within a project")
        return self

    def is_owner(self, member: Optional[Member]) -> bool:
        return member is not None and member.id == self.owner.id


class ConversationTurn(BaseModel):
    """One message of the conversation, oldest first in a history list."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role
    content: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, v):
        # Anything that is not the assistant speaks for the user
        if isinstance(v, Role):
            return v
        return Role.ASSISTANT if str(v).lower() == Role.ASSISTANT.value else Role.USER

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, v):
        return "" if v is None else str(v)


def coerce_history(history) -> list[ConversationTurn]:
    """Accept ConversationTurn objects or plain ``{"role", "content"}`` dicts."""
    turns: list[ConversationTurn] = []
    for item in history or []:
        if isinstance(item, ConversationTurn):
            turns.append(item)
        elif isinstance(item, dict):
            turns.append(ConversationTurn.model_validate(item))
    return turns
