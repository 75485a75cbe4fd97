"""
Entity Schema - Pydantic models for entities pulled out of a user utterance.

Every field is optional: extraction never fails, absent entities are None.
"""
from datetime import date
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from taskassist.models.project import TaskPriority, TaskStatus


class AssigneeSentinel(str, Enum):
    """
    Symbolic assignees resolved by the executor at apply time.

    The values are part of the executor's wire contract.
    """
    ME = "__ME__"
    OWNER = "__OWNER__"


# Spelled-out quantities accepted wherever a count is expected
NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

ORDINAL_WORDS = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "eighth": 8,
    "ninth": 9,
    "tenth": 10,
}

LATEST = "latest"


class DateWindow(BaseModel):
    """
    An inclusive range of calendar days matched against ``Task.end_date``.

    ``overdue`` windows have no start and additionally exclude done tasks.
    """
    model_config = ConfigDict(frozen=True)

    label: str = Field(description="Human label, e.g. 'today', 'this week', 'overdue'")
    start: Optional[date] = None
    end: Optional[date] = None
    overdue: bool = False

    def contains(self, day: Optional[date]) -> bool:
        if day is None:
            return False
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


class OrdinalRef(BaseModel):
    """Positional reference: 'first task', 'latest task', 'first 3 tasks'."""
    model_config = ConfigDict(frozen=True)

    position: Union[int, Literal["latest"]] = Field(
        description="1-based position in creation order, or 'latest' for the newest end"
    )
    count: Optional[int] = Field(default=None, ge=1)


class ExtractedEntities(BaseModel):
    """
    Structured entities found in a single utterance.

    Conflicting status/priority tokens resolve to the leftmost match.
    """
    model_config = ConfigDict(frozen=True)

    task_ids: tuple[int, ...] = Field(
        default=(),
        description="Unique '#<digits>' references in order of appearance"
    )
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    date_window: Optional[DateWindow] = None
    assignee_hint: Optional[str] = Field(
        default=None,
        description="'__ME__', '__OWNER__' or a literal name fragment"
    )
    ordinal: Optional[OrdinalRef] = None
    quantity: Optional[int] = None
    keyword: Optional[str] = None
    quoted_text: Optional[str] = None
    has_pronoun: bool = False

    @property
    def has_filters(self) -> bool:
        return self.status is not None or self.priority is not None

    @property
    def assignee_is_sentinel(self) -> bool:
        return self.assignee_hint in (AssigneeSentinel.ME.value, AssigneeSentinel.OWNER.value)
